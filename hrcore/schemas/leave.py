from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from hrcore.models.leave_request import DayType


class LeaveRequestCreate(BaseModel):
    leave_type_id: int
    start_date: date
    end_date: date
    days: Optional[Decimal] = Field(default=None, gt=0)
    day_type: DayType = DayType.FULL_DAY
    half_day_position: Optional[Literal["first", "last"]] = None
    reason: Optional[str] = None
    document_url: Optional[str] = None
    document_file_name: Optional[str] = None
    # Finance roles may file on behalf of an employee; defaults to the caller
    employee_id: Optional[int] = None


class LeaveRequestUpdate(BaseModel):
    start_date: date
    end_date: date
    days: Optional[Decimal] = Field(default=None, gt=0)
    day_type: DayType = DayType.FULL_DAY
    half_day_position: Optional[Literal["first", "last"]] = None
    reason: Optional[str] = None
    document_url: Optional[str] = None
    document_file_name: Optional[str] = None


class LeaveActionRequest(BaseModel):
    reason: Optional[str] = None


class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    days: Decimal
    day_type: str
    half_day_position: Optional[str] = None
    reason: Optional[str] = None
    status: str
    approver_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    document_url: Optional[str] = None
    document_file_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LeaveBalanceResponse(BaseModel):
    leave_type_id: int
    leave_type_code: str
    leave_type_name: str
    year: int
    entitlement: Decimal
    effective_entitlement: Decimal
    carried_over: Decimal
    used: Decimal
    pending: Decimal
    available: Decimal
    negative: bool


class RolloverRequest(BaseModel):
    from_year: int
    dry_run: bool = False


class RolloverEntryResponse(BaseModel):
    employee_id: int
    employee_name: str
    leave_type_code: str
    unused: Decimal
    carried: Decimal
    warning: Optional[str] = None


class RolloverReportResponse(BaseModel):
    from_year: int
    target_year: int
    dry_run: bool
    employees_processed: int
    total_carried: Decimal
    entries: List[RolloverEntryResponse]
    errors: List[dict]
