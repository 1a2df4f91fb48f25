from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from hrcore.core.context import RequestContext
from hrcore.database import get_db
from hrcore.dependencies import get_request_context
from hrcore.schemas.expense import (
    ExpenseActionRequest,
    ExpenseClaimCreate,
    ExpenseClaimResponse,
    ExpenseClaimUpdate,
    ExpensePaymentRequest,
)
from hrcore.services.expense_service import ExpenseAction, ExpenseService

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseClaimResponse, status_code=201)
def submit_expense_claim(
    payload: ExpenseClaimCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return ExpenseService(db).create_claim(ctx, **payload.model_dump())


@router.get("", response_model=List[ExpenseClaimResponse])
def list_expense_claims(
    employee_id: Optional[int] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return ExpenseService(db).list_claims(ctx, employee_id=employee_id, status=status)


@router.patch("/{claim_id}", response_model=ExpenseClaimResponse)
def edit_expense_claim(
    claim_id: int,
    payload: ExpenseClaimUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return ExpenseService(db).update_claim(ctx, claim_id, **payload.model_dump())


@router.post("/{claim_id}/pay", response_model=ExpenseClaimResponse)
def pay_expense_claim(
    claim_id: int,
    payload: Optional[ExpensePaymentRequest] = Body(default=None),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    reference = payload.payment_reference if payload else None
    return ExpenseService(db).transition(claim_id, ExpenseAction.PAY, ctx, payment_reference=reference)


@router.post("/{claim_id}/{action}", response_model=ExpenseClaimResponse)
def transition_expense_claim(
    claim_id: int,
    action: ExpenseAction,
    payload: Optional[ExpenseActionRequest] = Body(default=None),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """approve | reject | cancel | reset"""
    reason = payload.reason if payload else None
    return ExpenseService(db).transition(claim_id, action, ctx, reason=reason)
