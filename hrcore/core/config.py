import os
import logging
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List
from dotenv import load_dotenv

load_dotenv()


class PayrollSettings(BaseModel):
    income_tax_rate: float = Field(default=float(os.getenv("PAYROLL_INCOME_TAX_RATE", "0.15")))
    payment_day: int = Field(default=int(os.getenv("PAYROLL_PAYMENT_DAY", "28")))
    # Roles allowed to run payroll and settle payslips / expense claims
    finance_roles: List[str] = ["HR", "ADMIN"]


class LeaveSettings(BaseModel):
    reviewer_roles: List[str] = ["MANAGER", "HR", "ADMIN"]
    rollover_roles: List[str] = ["ADMIN"]
    rollover_min_year: int = 2020
    rollover_max_year: int = 2100


def _category_limits(raw: str) -> Dict[str, Decimal]:
    """Parse "CE=500,TRV=2000" into {"CE": Decimal("500"), "TRV": Decimal("2000")}."""
    limits = {}
    for item in filter(None, (part.strip() for part in raw.split(","))):
        code, _, amount = item.partition("=")
        limits[code.strip().upper()] = Decimal(amount.strip())
    return limits


class ExpenseSettings(BaseModel):
    # Per-category claim cap; categories not listed are uncapped
    category_limits: Dict[str, Decimal] = Field(
        default_factory=lambda: _category_limits(os.getenv("EXPENSE_CATEGORY_LIMITS", ""))
    )


class Config(BaseModel):
    app_name: str = "HR Balance Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    # Domain groups
    payroll: PayrollSettings = PayrollSettings()
    leave: LeaveSettings = LeaveSettings()
    expense: ExpenseSettings = ExpenseSettings()

    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # Seed the default leave-type catalogue on startup when the table is empty
    seed_leave_types: bool = os.getenv("SEED_LEAVE_TYPES", "true").lower() == "true"

    # Rate limiting for batch endpoints (payroll generation, rollover)
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    batch_rate_limit: str = os.getenv("BATCH_RATE_LIMIT", "30/minute")

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment == "production" and settings.database_url.startswith("sqlite"):
    _logger.warning("Running production with a SQLite database; row locking is not enforced.")
