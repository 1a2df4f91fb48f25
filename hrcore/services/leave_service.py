"""
Leave Balance Ledger

Owns the per-(employee, leave type, year) balance rows and the leave
request state machine that mutates them:

    PENDING -> APPROVED | REJECTED | CANCELLED
    APPROVED | REJECTED -> PENDING   (reset, reviewer only, audited)
    CANCELLED is terminal

At every commit, a balance row's `pending` equals the sum of `days` over
that row's PENDING requests, and `used` the sum over APPROVED ones.

Each transition is one transaction: the request status is changed with a
conditional UPDATE (WHERE status = <expected>) so two concurrent
decisions on the same request cannot both apply their balance delta.
"""
import enum
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional, Union

from sqlalchemy.orm import Session

from hrcore.core.config import settings
from hrcore.core.context import RequestContext
from hrcore.core.exceptions import (
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from hrcore.models.employee import Employee
from hrcore.models.leave_balance import LeaveBalance
from hrcore.models.leave_request import DayType, LeaveRequest, LeaveStatus
from hrcore.models.leave_type import LeaveType
from hrcore.services.audit import AuditService
from hrcore.services.base import BaseService
from hrcore.services.calendar_service import CalendarService
from hrcore.services.proration import Number, count_leave_days, prorate, to_decimal


ZERO = Decimal("0")


class LeaveAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    RESET = "reset"


@dataclass(frozen=True)
class _Rule:
    sources: FrozenSet[LeaveStatus]
    target: LeaveStatus


TRANSITIONS: Dict[LeaveAction, _Rule] = {
    LeaveAction.APPROVE: _Rule(frozenset({LeaveStatus.PENDING}), LeaveStatus.APPROVED),
    LeaveAction.REJECT: _Rule(frozenset({LeaveStatus.PENDING}), LeaveStatus.REJECTED),
    LeaveAction.CANCEL: _Rule(frozenset({LeaveStatus.PENDING}), LeaveStatus.CANCELLED),
    LeaveAction.RESET: _Rule(frozenset({LeaveStatus.APPROVED, LeaveStatus.REJECTED}), LeaveStatus.PENDING),
}

# (from, to) -> (pending sign, used sign), applied to the request's days
BALANCE_EFFECTS = {
    (LeaveStatus.PENDING, LeaveStatus.APPROVED): (-1, 1),
    (LeaveStatus.PENDING, LeaveStatus.REJECTED): (-1, 0),
    (LeaveStatus.PENDING, LeaveStatus.CANCELLED): (-1, 0),
    (LeaveStatus.APPROVED, LeaveStatus.PENDING): (1, -1),
    (LeaveStatus.REJECTED, LeaveStatus.PENDING): (1, 0),
}

_ACTIVE_STATUSES = (LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value)


class LeaveLedgerService(BaseService):

    def __init__(self, db: Session, today: Optional[date] = None):
        super().__init__(db)
        self._today = today
        self.audit = AuditService(db)
        self.calendar = CalendarService(db)

    @property
    def today(self) -> date:
        return self._today or date.today()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_employee(self, employee_id: int) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if not employee:
            raise NotFoundError("Employee", employee_id)
        return employee

    def get_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if not leave_type:
            raise NotFoundError("LeaveType", leave_type_id)
        return leave_type

    def get_request(self, request_id: int, for_update: bool = False) -> LeaveRequest:
        query = self.db.query(LeaveRequest).filter(LeaveRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        leave = query.first()
        if not leave:
            raise NotFoundError("LeaveRequest", request_id)
        return leave

    def get_balance(self, employee_id: int, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        ).first()

    def get_or_create_balance(self, employee: Employee, leave_type: LeaveType, year: int) -> LeaveBalance:
        """Flushes a new row when missing; the caller owns the commit."""
        balance = self.get_balance(employee.id, leave_type.id, year)
        if balance is None:
            balance = LeaveBalance(
                employee_id=employee.id,
                leave_type_id=leave_type.id,
                year=year,
                entitlement=leave_type.default_days,
                carried_over=ZERO,
                used=ZERO,
                pending=ZERO,
            )
            self.db.add(balance)
            self.db.flush()
            self._logger.info(f"Created leave balance for employee {employee.id}, {leave_type.code} {year}")
        return balance

    def initialize_balances(self, employee_id: int, year: Optional[int] = None) -> List[LeaveBalance]:
        """Create this year's rows for every leave type (employee onboarding)."""
        employee = self.get_employee(employee_id)
        year = year or self.today.year
        try:
            balances = [
                self.get_or_create_balance(employee, leave_type, year)
                for leave_type in self.db.query(LeaveType).order_by(LeaveType.id).all()
            ]
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return balances

    # ------------------------------------------------------------------
    # Entitlement & availability
    # ------------------------------------------------------------------

    def proration_date(self, year: int) -> date:
        """
        Dec 31 for past years, today otherwise.

        Requests filed ahead into a future year are checked against the
        entitlement accrued so far, not against a fresh year that has
        accrued nothing yet.
        """
        today = self.today
        if year < today.year:
            return date(year, 12, 31)
        return today

    def effective_entitlement(self, balance: LeaveBalance, leave_type: LeaveType, employee: Employee) -> Decimal:
        """
        The one entitlement figure used for availability checks and for display.
        Prorated leave types accrue from the stored allocation; others get it whole.
        """
        entitlement = to_decimal(balance.entitlement or 0)
        if not leave_type.prorated:
            return entitlement
        return prorate(entitlement, employee.start_date, self.proration_date(balance.year))

    def available_days(self, balance: LeaveBalance, leave_type: LeaveType, employee: Employee) -> Decimal:
        return (
            self.effective_entitlement(balance, leave_type, employee)
            + to_decimal(balance.carried_over or 0)
            - to_decimal(balance.used or 0)
            - to_decimal(balance.pending or 0)
        )

    def balance_summary(self, ctx: RequestContext, employee_id: int, year: Optional[int] = None) -> List[Dict[str, Any]]:
        if not ctx.is_owner_of(employee_id):
            ctx.require_role(settings.leave.reviewer_roles, "view another employee's leave balances")
        employee = self.get_employee(employee_id)
        year = year or self.today.year
        balances = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
        ).order_by(LeaveBalance.leave_type_id).all()

        summary = []
        for balance in balances:
            leave_type = balance.leave_type
            effective = self.effective_entitlement(balance, leave_type, employee)
            available = self.available_days(balance, leave_type, employee)
            summary.append({
                "leave_type_id": leave_type.id,
                "leave_type_code": leave_type.code,
                "leave_type_name": leave_type.name,
                "year": balance.year,
                "entitlement": to_decimal(balance.entitlement),
                "effective_entitlement": effective,
                "carried_over": to_decimal(balance.carried_over),
                "used": to_decimal(balance.used),
                "pending": to_decimal(balance.pending),
                "available": available,
                "negative": available < 0,
            })
        return summary

    # ------------------------------------------------------------------
    # Submission & edit
    # ------------------------------------------------------------------

    @staticmethod
    def _effective_day_type(leave_type: LeaveType, start_date: date, end_date: date,
                            day_type: Union[DayType, str], half_day_position: Optional[str]):
        """Half days are only honoured for leave types that allow them."""
        if not leave_type.half_day_allowed:
            return DayType.FULL_DAY, None
        if start_date == end_date:
            return DayType(day_type), None
        return DayType.FULL_DAY, half_day_position

    @staticmethod
    def _validate_dates(start_date: date, end_date: date) -> None:
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date")
        if start_date.year != end_date.year:
            raise ValidationError("Leave requests cannot span two calendar years; submit one request per year")

    def _check_overlap(self, employee_id: int, start_date: date, end_date: date,
                       day_type: DayType, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(_ACTIVE_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        if exclude_id is not None:
            query = query.filter(LeaveRequest.id != exclude_id)

        conflicts = []
        for other in query.all():
            # AM and PM halves of the same single day can coexist
            same_single_day = start_date == end_date == other.start_date == other.end_date
            halves = {day_type.value, other.day_type}
            if same_single_day and halves == {DayType.AM_HALF.value, DayType.PM_HALF.value}:
                continue
            overlap_start = max(start_date, other.start_date)
            overlap_end = min(end_date, other.end_date)
            conflicts.append(
                overlap_start.isoformat() if overlap_start == overlap_end
                else f"{overlap_start.isoformat()}..{overlap_end.isoformat()}"
            )

        if conflicts:
            raise ValidationError(
                f"Leave overlaps with existing request on: {', '.join(conflicts)}",
                details={"conflicts": conflicts},
            )

    def _resolve_applicant(self, ctx: RequestContext, employee_id: Optional[int]) -> Employee:
        target_id = employee_id if employee_id is not None else ctx.employee_id
        if target_id is None:
            raise ValidationError("No employee record found for this user")
        if not ctx.is_owner_of(target_id):
            ctx.require_role(settings.payroll.finance_roles, "submit leave on behalf of another employee")
        return self.get_employee(target_id)

    def _shift_balance(self, balance_id: int, pending: Decimal = ZERO, used: Decimal = ZERO) -> None:
        """SQL-side increments so concurrent writers never lose an update."""
        values = {}
        if pending:
            values[LeaveBalance.pending] = LeaveBalance.pending + pending
        if used:
            values[LeaveBalance.used] = LeaveBalance.used + used
        if values:
            self.db.query(LeaveBalance).filter(LeaveBalance.id == balance_id).update(values, synchronize_session=False)

    def create_request(
        self,
        ctx: RequestContext,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        days: Optional[Number] = None,
        day_type: Union[DayType, str] = DayType.FULL_DAY,
        half_day_position: Optional[str] = None,
        reason: Optional[str] = None,
        document_url: Optional[str] = None,
        document_file_name: Optional[str] = None,
        employee_id: Optional[int] = None,
    ) -> LeaveRequest:
        """Submit a leave request in PENDING and reserve its days on the balance row."""
        employee = self._resolve_applicant(ctx, employee_id)
        leave_type = self.get_leave_type(leave_type_id)
        self._validate_dates(start_date, end_date)

        day_type, half_day_position = self._effective_day_type(leave_type, start_date, end_date, day_type, half_day_position)
        requested = count_leave_days(start_date, end_date, day_type, half_day_position, days)
        if requested <= 0:
            raise ValidationError("Leave request must cover at least half a day")
        self._check_overlap(employee.id, start_date, end_date, day_type)

        try:
            balance = self.get_or_create_balance(employee, leave_type, start_date.year)
            available = self.available_days(balance, leave_type, employee)
            if leave_type.enforce_balance and requested > available:
                raise ValidationError(
                    "Insufficient leave balance",
                    details={"available": str(available), "requested": str(requested)},
                )

            leave = LeaveRequest(
                employee_id=employee.id,
                leave_type_id=leave_type.id,
                start_date=start_date,
                end_date=end_date,
                days=requested,
                day_type=day_type.value,
                half_day_position=half_day_position,
                reason=reason or None,
                status=LeaveStatus.PENDING.value,
                document_url=document_url or None,
                document_file_name=document_file_name or None,
            )
            self.db.add(leave)
            self._shift_balance(balance.id, pending=requested)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(leave)
        self._logger.info(
            f"Leave request {leave.id} submitted: employee {employee.id}, {leave_type.code}, {requested} day(s)",
            extra={"leave_request_id": leave.id, "actor_id": ctx.actor_id},
        )
        return leave

    def update_request(
        self,
        ctx: RequestContext,
        request_id: int,
        start_date: date,
        end_date: date,
        days: Optional[Number] = None,
        day_type: Union[DayType, str] = DayType.FULL_DAY,
        half_day_position: Optional[str] = None,
        reason: Optional[str] = None,
        document_url: Optional[str] = None,
        document_file_name: Optional[str] = None,
    ) -> LeaveRequest:
        """Owner edit of a PENDING request; moves the reservation by the day delta."""
        leave = self.get_request(request_id, for_update=True)
        if not ctx.is_owner_of(leave.employee_id):
            raise ForbiddenError("Only the requesting employee can edit a leave request")
        if leave.status != LeaveStatus.PENDING.value:
            raise InvalidStateTransitionError(
                "Only pending leave requests can be edited", leave.status, LeaveStatus.PENDING.value
            )

        leave_type = leave.leave_type
        employee = leave.employee
        self._validate_dates(start_date, end_date)
        day_type, half_day_position = self._effective_day_type(leave_type, start_date, end_date, day_type, half_day_position)
        new_days = count_leave_days(start_date, end_date, day_type, half_day_position, days)
        self._check_overlap(employee.id, start_date, end_date, day_type, exclude_id=leave.id)

        old_days = to_decimal(leave.days)
        old_year = leave.year
        new_year = start_date.year

        try:
            new_balance = self.get_or_create_balance(employee, leave_type, new_year)
            released = old_days if new_year == old_year else ZERO
            available = self.available_days(new_balance, leave_type, employee) + released
            if leave_type.enforce_balance and new_days > available:
                raise ValidationError(
                    "Insufficient leave balance",
                    details={"available": str(available), "requested": str(new_days)},
                )

            updated = self.db.query(LeaveRequest).filter(
                LeaveRequest.id == leave.id,
                LeaveRequest.status == LeaveStatus.PENDING.value,
            ).update({
                "start_date": start_date,
                "end_date": end_date,
                "days": new_days,
                "day_type": day_type.value,
                "half_day_position": half_day_position,
                "reason": reason if reason is not None else leave.reason,
                "document_url": document_url if document_url is not None else leave.document_url,
                "document_file_name": document_file_name if document_file_name is not None else leave.document_file_name,
            }, synchronize_session=False)
            if updated != 1:
                raise InvalidStateTransitionError("Leave request was decided while being edited", None, LeaveStatus.PENDING.value)

            if new_year == old_year:
                self._shift_balance(new_balance.id, pending=new_days - old_days)
            else:
                old_balance = self.get_balance(employee.id, leave_type.id, old_year)
                if old_balance is None:
                    raise NotFoundError("LeaveBalance", f"{employee.id}/{leave_type.code}/{old_year}")
                self._shift_balance(old_balance.id, pending=-old_days)
                self._shift_balance(new_balance.id, pending=new_days)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(leave)
        self._logger.info(f"Leave request {leave.id} edited: {old_days} -> {new_days} day(s)")
        return leave

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _authorize(self, leave: LeaveRequest, action: LeaveAction, ctx: RequestContext) -> None:
        if action == LeaveAction.CANCEL:
            if not ctx.is_owner_of(leave.employee_id):
                raise ForbiddenError("Only the requesting employee can cancel a leave request")
            return
        ctx.require_role(settings.leave.reviewer_roles, f"{action.value} leave requests")

    @staticmethod
    def _state_error(action: LeaveAction, current: LeaveStatus, target: LeaveStatus) -> InvalidStateTransitionError:
        if action == LeaveAction.RESET and current == LeaveStatus.CANCELLED:
            message = "Cancelled leave requests cannot be reset"
        elif action == LeaveAction.RESET:
            message = "Leave request is already pending"
        elif action == LeaveAction.CANCEL:
            message = "Only pending leave requests can be cancelled"
        else:
            message = f"Leave request is not pending (status: {current.value})"
        return InvalidStateTransitionError(message, current.value, target.value)

    @staticmethod
    def _status_fields(target: LeaveStatus, ctx: RequestContext, reason: Optional[str]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        if target == LeaveStatus.APPROVED:
            return {"status": target.value, "approver_id": ctx.actor_id, "approved_at": now}
        if target == LeaveStatus.REJECTED:
            return {"status": target.value, "approver_id": ctx.actor_id, "rejected_at": now,
                    "rejection_reason": reason or None}
        if target == LeaveStatus.PENDING:
            return {"status": target.value, "approver_id": None, "approved_at": None,
                    "rejected_at": None, "rejection_reason": None}
        return {"status": target.value}

    def transition(self, request_id: int, action: Union[LeaveAction, str], ctx: RequestContext,
                   reason: Optional[str] = None) -> LeaveRequest:
        """
        Apply one lifecycle action. Request status, balance delta, calendar
        marker (approve) and audit entry (reset) commit together; any failure
        leaves everything untouched.
        """
        try:
            action = LeaveAction(action)
        except ValueError:
            raise ValidationError(f"Unknown leave action: {action}")
        rule = TRANSITIONS[action]

        leave = self.get_request(request_id, for_update=True)
        self._authorize(leave, action, ctx)
        current = LeaveStatus(leave.status)
        if current not in rule.sources:
            raise self._state_error(action, current, rule.target)

        balance = self.get_balance(leave.employee_id, leave.leave_type_id, leave.year)
        if balance is None:
            raise NotFoundError("LeaveBalance", f"{leave.employee_id}/{leave.leave_type_id}/{leave.year}")

        days = to_decimal(leave.days)
        pending_sign, used_sign = BALANCE_EFFECTS[(current, rule.target)]

        try:
            updated = self.db.query(LeaveRequest).filter(
                LeaveRequest.id == leave.id,
                LeaveRequest.status == current.value,
            ).update(self._status_fields(rule.target, ctx, reason), synchronize_session=False)
            if updated != 1:
                raise InvalidStateTransitionError(
                    "Leave request was modified concurrently", current.value, rule.target.value
                )

            self._shift_balance(balance.id, pending=pending_sign * days, used=used_sign * days)

            if rule.target == LeaveStatus.APPROVED:
                self.calendar.create_absence_marker(leave)
            if action == LeaveAction.RESET:
                self.audit.log_reset("LeaveRequest", leave.id, ctx, current.value, reason)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._logger.info(
            f"Leave request {leave.id}: {current.value} -> {rule.target.value}",
            extra={"leave_request_id": leave.id, "actor_id": ctx.actor_id, "action": action.value},
        )

        if action == LeaveAction.RESET and current == LeaveStatus.APPROVED:
            # Compensating action outside the ledger transaction; the balance is already consistent
            try:
                self.calendar.delete_absence_markers(leave.id)
            except Exception:
                self._logger.warning(f"Could not delete calendar marker for leave request {leave.id}", exc_info=True)

        self.db.refresh(leave)
        self._warn_if_negative(balance)
        return leave

    def approve(self, request_id: int, ctx: RequestContext) -> LeaveRequest:
        return self.transition(request_id, LeaveAction.APPROVE, ctx)

    def reject(self, request_id: int, ctx: RequestContext, reason: Optional[str] = None) -> LeaveRequest:
        return self.transition(request_id, LeaveAction.REJECT, ctx, reason)

    def cancel(self, request_id: int, ctx: RequestContext) -> LeaveRequest:
        return self.transition(request_id, LeaveAction.CANCEL, ctx)

    def reset(self, request_id: int, ctx: RequestContext, reason: Optional[str] = None) -> LeaveRequest:
        return self.transition(request_id, LeaveAction.RESET, ctx, reason)

    def _warn_if_negative(self, balance: LeaveBalance) -> None:
        self.db.refresh(balance)
        available = self.available_days(balance, balance.leave_type, balance.employee)
        if available < 0:
            self._logger.warning(
                f"Leave balance {balance.id} is negative ({available} days available)",
                extra={"employee_id": balance.employee_id, "leave_type_id": balance.leave_type_id, "year": balance.year},
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_requests(self, ctx: RequestContext, employee_id: Optional[int] = None,
                      status: Optional[str] = None) -> List[LeaveRequest]:
        if not ctx.has_role(settings.leave.reviewer_roles):
            if employee_id is not None and not ctx.is_owner_of(employee_id):
                raise ForbiddenError("Staff can only list their own leave requests")
            employee_id = ctx.employee_id
            if employee_id is None:
                return []
        query = self.db.query(LeaveRequest)
        if employee_id is not None:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.filter(LeaveRequest.status == status.upper())
        return query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).all()
