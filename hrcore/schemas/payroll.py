from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional


class PayrollGenerateRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class PayrollPreviewRequest(BaseModel):
    employee_id: int
    overtime: Decimal = Field(default=Decimal("0"), ge=0)
    bonus: Decimal = Field(default=Decimal("0"), ge=0)
    other_deductions: Decimal = Field(default=Decimal("0"), ge=0)


class PayslipAdjustRequest(BaseModel):
    overtime: Optional[Decimal] = Field(default=None, ge=0)
    bonus: Optional[Decimal] = Field(default=None, ge=0)
    other_deductions: Optional[Decimal] = Field(default=None, ge=0)


class PayrollItemResult(BaseModel):
    employee_id: int
    employee_name: str
    outcome: str
    reason: Optional[str] = None
    payslip_id: Optional[int] = None
    net_salary: Optional[Decimal] = None
    warnings: List[str] = []


class PayrollReport(BaseModel):
    month: int
    year: int
    pay_period_start: date
    pay_period_end: date
    total_employees: int
    created: int
    skipped: int
    errors: int
    details: List[PayrollItemResult]


class PayslipResponse(BaseModel):
    id: int
    employee_id: int
    employee_name: Optional[str] = None
    pay_period_start: date
    pay_period_end: date
    payment_date: date
    basic_salary: Decimal
    allowances: Decimal
    overtime: Decimal
    bonus: Decimal
    gross_salary: Decimal
    cpf_employee: Decimal
    cpf_employer: Decimal
    income_tax: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    status: str
    paid_at: Optional[datetime] = None
