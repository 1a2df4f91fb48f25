from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


class ExpenseClaimCreate(BaseModel):
    category_code: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amount: Decimal = Field(gt=0, decimal_places=2)
    expense_date: date
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None


class ExpenseClaimUpdate(BaseModel):
    category_code: str = Field(min_length=1)
    description: str = Field(min_length=1)
    amount: Decimal = Field(gt=0, decimal_places=2)
    expense_date: date
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None


class ExpenseActionRequest(BaseModel):
    reason: Optional[str] = None


class ExpensePaymentRequest(BaseModel):
    payment_reference: Optional[str] = None


class ExpenseClaimResponse(BaseModel):
    id: int
    employee_id: int
    category_code: str
    description: str
    amount: Decimal
    expense_date: date
    receipt_url: Optional[str] = None
    receipt_file_name: Optional[str] = None
    status: str
    approver_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
