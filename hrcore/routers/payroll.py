"""
Payroll Router

Handles HTTP endpoints for payroll operations.
All business logic is delegated to the payroll service layer.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from hrcore.core.config import settings
from hrcore.core.context import RequestContext
from hrcore.core.limiter import limiter
from hrcore.core.schemas import ApiResponse
from hrcore.database import get_db
from hrcore.dependencies import get_request_context
from hrcore.schemas.payroll import (
    PayrollGenerateRequest,
    PayrollPreviewRequest,
    PayrollReport,
    PayslipAdjustRequest,
    PayslipResponse,
)
from hrcore.services import payroll_service

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post("/generate", response_model=ApiResponse[PayrollReport])
@limiter.limit(settings.batch_rate_limit)
def generate_payroll(
    request: Request,
    payload: PayrollGenerateRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Generate payslips for all active employees for the given month.
    Re-running a month skips employees that already have a payslip.
    """
    report = payroll_service.generate_payroll(db, payload.month, payload.year, ctx)
    return ApiResponse[PayrollReport].ok(report)


@router.post("/preview")
def preview_payroll(
    payload: PayrollPreviewRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return payroll_service.preview_payroll(
        db, payload.employee_id, ctx,
        overtime=payload.overtime,
        bonus=payload.bonus,
        other_deductions=payload.other_deductions,
    )


@router.get("/payslips", response_model=List[PayslipResponse])
def list_payslips(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return payroll_service.list_payslips(db, ctx, employee_id)


@router.patch("/payslips/{payslip_id}", response_model=PayslipResponse)
def adjust_payslip(
    payslip_id: int,
    payload: PayslipAdjustRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return payroll_service.adjust_payslip(db, payslip_id, ctx, **payload.model_dump())


@router.post("/payslips/{payslip_id}/pay", response_model=PayslipResponse)
def mark_payslip_paid(
    payslip_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return payroll_service.mark_payslip_paid(db, payslip_id, ctx)
