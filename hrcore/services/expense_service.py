"""
Expense claim workflow.

    PENDING -> APPROVED | REJECTED | CANCELLED
    APPROVED -> PAID                          (finance roles)
    APPROVED | REJECTED | PAID -> PENDING     (reset, reviewer only, audited)
    CANCELLED is terminal

Claims carry no balance, so a transition is just the conditional status
update plus, for reset, its audit entry. The claimant may edit a claim
while it is PENDING.
"""
import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Union

from hrcore.core.config import settings
from hrcore.core.context import RequestContext
from hrcore.core.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from hrcore.models.employee import Employee
from hrcore.models.expense_claim import ExpenseClaim, ExpenseStatus
from hrcore.services.audit import AuditService
from hrcore.services.base import BaseService
from hrcore.services.proration import Number, to_decimal


class ExpenseAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    PAY = "pay"
    RESET = "reset"


_SOURCES: Dict[ExpenseAction, FrozenSet[ExpenseStatus]] = {
    ExpenseAction.APPROVE: frozenset({ExpenseStatus.PENDING}),
    ExpenseAction.REJECT: frozenset({ExpenseStatus.PENDING}),
    ExpenseAction.CANCEL: frozenset({ExpenseStatus.PENDING}),
    ExpenseAction.PAY: frozenset({ExpenseStatus.APPROVED}),
    ExpenseAction.RESET: frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED, ExpenseStatus.PAID}),
}

_TARGETS: Dict[ExpenseAction, ExpenseStatus] = {
    ExpenseAction.APPROVE: ExpenseStatus.APPROVED,
    ExpenseAction.REJECT: ExpenseStatus.REJECTED,
    ExpenseAction.CANCEL: ExpenseStatus.CANCELLED,
    ExpenseAction.PAY: ExpenseStatus.PAID,
    ExpenseAction.RESET: ExpenseStatus.PENDING,
}


class ExpenseService(BaseService):

    def __init__(self, db, today: Optional[date] = None):
        super().__init__(db)
        self._today = today
        self.audit = AuditService(db)

    @property
    def today(self) -> date:
        return self._today or date.today()

    def get_claim(self, claim_id: int, for_update: bool = False) -> ExpenseClaim:
        query = self.db.query(ExpenseClaim).filter(ExpenseClaim.id == claim_id)
        if for_update:
            query = query.with_for_update()
        claim = query.first()
        if not claim:
            raise NotFoundError("ExpenseClaim", claim_id)
        return claim

    def _validate_fields(self, category_code: str, description: str, amount: Number, expense_date: date) -> Decimal:
        value = to_decimal(amount)
        if value <= 0:
            raise ValidationError("Amount must be greater than zero", details={"amount": str(value)})
        if not category_code or not description:
            raise ValidationError("Category and description are required")
        if expense_date > self.today:
            raise ValidationError("Expense date cannot be in the future", details={"expense_date": expense_date.isoformat()})

        limit = settings.expense.category_limits.get(category_code.upper())
        if limit is not None and value > limit:
            raise ValidationError(
                f"Amount exceeds category limit of {limit:.2f}",
                details={"category_code": category_code.upper(), "max_amount": str(limit)},
            )
        return value

    def create_claim(
        self,
        ctx: RequestContext,
        category_code: str,
        description: str,
        amount: Number,
        expense_date: date,
        receipt_url: Optional[str] = None,
        receipt_file_name: Optional[str] = None,
    ) -> ExpenseClaim:
        if ctx.employee_id is None:
            raise ValidationError("No employee record found for this user")
        if not self.db.get(Employee, ctx.employee_id):
            raise NotFoundError("Employee", ctx.employee_id)

        value = self._validate_fields(category_code, description, amount, expense_date)

        claim = ExpenseClaim(
            employee_id=ctx.employee_id,
            category_code=category_code.upper(),
            description=description,
            amount=value,
            expense_date=expense_date,
            receipt_url=receipt_url or None,
            receipt_file_name=receipt_file_name or None,
            status=ExpenseStatus.PENDING.value,
        )
        try:
            self.db.add(claim)
            self.db.commit()
            self.db.refresh(claim)
        except Exception:
            self.db.rollback()
            raise

        self._logger.info(f"Expense claim {claim.id} submitted by employee {ctx.employee_id}: {value}")
        return claim

    def update_claim(
        self,
        ctx: RequestContext,
        claim_id: int,
        category_code: str,
        description: str,
        amount: Number,
        expense_date: date,
        receipt_url: Optional[str] = None,
        receipt_file_name: Optional[str] = None,
    ) -> ExpenseClaim:
        """Claimant edit of a PENDING claim. Receipt fields left as None are kept."""
        claim = self.get_claim(claim_id, for_update=True)
        if not ctx.is_owner_of(claim.employee_id):
            raise ForbiddenError("Only the claimant can edit an expense claim")
        if claim.status != ExpenseStatus.PENDING.value:
            raise InvalidStateTransitionError(
                "Only pending expense claims can be edited", claim.status, ExpenseStatus.PENDING.value
            )
        value = self._validate_fields(category_code, description, amount, expense_date)

        try:
            updated = self.db.query(ExpenseClaim).filter(
                ExpenseClaim.id == claim.id,
                ExpenseClaim.status == ExpenseStatus.PENDING.value,
            ).update({
                "category_code": category_code.upper(),
                "description": description,
                "amount": value,
                "expense_date": expense_date,
                "receipt_url": receipt_url if receipt_url is not None else claim.receipt_url,
                "receipt_file_name": receipt_file_name if receipt_file_name is not None else claim.receipt_file_name,
            }, synchronize_session=False)
            if updated != 1:
                raise InvalidStateTransitionError(
                    "Expense claim was decided while being edited", None, ExpenseStatus.PENDING.value
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(claim)
        self._logger.info(f"Expense claim {claim.id} edited by employee {ctx.employee_id}: {value}")
        return claim

    def _authorize(self, claim: ExpenseClaim, action: ExpenseAction, ctx: RequestContext) -> None:
        if action == ExpenseAction.CANCEL:
            if not ctx.is_owner_of(claim.employee_id):
                raise ForbiddenError("Only the claimant can cancel an expense claim")
        elif action == ExpenseAction.PAY:
            ctx.require_role(settings.payroll.finance_roles, "mark expense claims as paid")
        else:
            ctx.require_role(settings.leave.reviewer_roles, f"{action.value} expense claims")

    @staticmethod
    def _status_fields(target: ExpenseStatus, ctx: RequestContext, reason: Optional[str],
                       payment_reference: Optional[str]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        if target == ExpenseStatus.APPROVED:
            return {"status": target.value, "approver_id": ctx.actor_id, "approved_at": now}
        if target == ExpenseStatus.REJECTED:
            return {"status": target.value, "approver_id": ctx.actor_id, "rejected_at": now,
                    "rejection_reason": reason or None}
        if target == ExpenseStatus.PAID:
            return {"status": target.value, "paid_at": now, "payment_reference": payment_reference or None}
        if target == ExpenseStatus.PENDING:
            return {"status": target.value, "approver_id": None, "approved_at": None, "rejected_at": None,
                    "rejection_reason": None, "paid_at": None, "payment_reference": None}
        return {"status": target.value}

    def transition(
        self,
        claim_id: int,
        action: Union[ExpenseAction, str],
        ctx: RequestContext,
        reason: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> ExpenseClaim:
        try:
            action = ExpenseAction(action)
        except ValueError:
            raise ValidationError(f"Unknown expense action: {action}")
        target = _TARGETS[action]

        claim = self.get_claim(claim_id, for_update=True)
        self._authorize(claim, action, ctx)
        current = ExpenseStatus(claim.status)
        if current not in _SOURCES[action]:
            if action == ExpenseAction.RESET and current == ExpenseStatus.CANCELLED:
                message = "Cancelled expense claims cannot be reset"
            elif action == ExpenseAction.PAY:
                message = "Only approved expense claims can be marked as paid"
            else:
                message = f"Expense claim cannot be {target.value.lower()} from {current.value}"
            raise InvalidStateTransitionError(message, current.value, target.value)

        try:
            updated = self.db.query(ExpenseClaim).filter(
                ExpenseClaim.id == claim.id,
                ExpenseClaim.status == current.value,
            ).update(self._status_fields(target, ctx, reason, payment_reference), synchronize_session=False)
            if updated != 1:
                raise InvalidStateTransitionError(
                    "Expense claim was modified concurrently", current.value, target.value
                )
            if action == ExpenseAction.RESET:
                self.audit.log_reset("ExpenseClaim", claim.id, ctx, current.value, reason)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._logger.info(
            f"Expense claim {claim.id}: {current.value} -> {target.value}",
            extra={"expense_claim_id": claim.id, "actor_id": ctx.actor_id, "action": action.value},
        )
        self.db.refresh(claim)
        return claim

    def list_claims(self, ctx: RequestContext, employee_id: Optional[int] = None,
                    status: Optional[str] = None) -> List[ExpenseClaim]:
        if not ctx.has_role(settings.leave.reviewer_roles):
            if employee_id is not None and not ctx.is_owner_of(employee_id):
                raise ForbiddenError("Staff can only list their own expense claims")
            employee_id = ctx.employee_id
            if employee_id is None:
                return []
        query = self.db.query(ExpenseClaim)
        if employee_id is not None:
            query = query.filter(ExpenseClaim.employee_id == employee_id)
        if status:
            query = query.filter(ExpenseClaim.status == status.upper())
        return query.order_by(ExpenseClaim.expense_date.desc(), ExpenseClaim.id.desc()).all()
