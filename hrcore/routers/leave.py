"""
Leave Router

Thin HTTP adapter over the leave ledger. Authorization and state rules
are enforced by the service layer; this module only maps payloads.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from hrcore.core.context import RequestContext
from hrcore.core.limiter import limiter
from hrcore.core.config import settings
from hrcore.core.schemas import ApiResponse
from hrcore.database import get_db
from hrcore.dependencies import get_request_context
from hrcore.schemas.leave import (
    LeaveActionRequest,
    LeaveBalanceResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveRequestUpdate,
    RolloverReportResponse,
    RolloverRequest,
)
from hrcore.services import rollover_service
from hrcore.services.leave_service import LeaveAction, LeaveLedgerService

router = APIRouter(prefix="/leave", tags=["leave"])


@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
def submit_leave_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return LeaveLedgerService(db).create_request(ctx, **payload.model_dump())


@router.patch("/requests/{request_id}", response_model=LeaveRequestResponse)
def edit_leave_request(
    request_id: int,
    payload: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return LeaveLedgerService(db).update_request(ctx, request_id, **payload.model_dump())


@router.post("/requests/{request_id}/{action}", response_model=LeaveRequestResponse)
def transition_leave_request(
    request_id: int,
    action: LeaveAction,
    payload: Optional[LeaveActionRequest] = Body(default=None),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """approve | reject | cancel | reset"""
    reason = payload.reason if payload else None
    return LeaveLedgerService(db).transition(request_id, action, ctx, reason)


@router.get("/requests", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    employee_id: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return LeaveLedgerService(db).list_requests(ctx, employee_id=employee_id, status=status)


@router.get("/balances/{employee_id}", response_model=List[LeaveBalanceResponse])
def get_leave_balances(
    employee_id: int,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return LeaveLedgerService(db).balance_summary(ctx, employee_id, year or date.today().year)


@router.post("/rollover", response_model=ApiResponse[RolloverReportResponse])
@limiter.limit(settings.batch_rate_limit)
def run_rollover(
    request: Request,
    payload: RolloverRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    report = rollover_service.rollover(db, payload.from_year, ctx=ctx, dry_run=payload.dry_run)
    return ApiResponse[RolloverReportResponse].ok(report.to_dict())
