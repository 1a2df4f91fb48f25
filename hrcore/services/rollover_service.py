"""
Year-end leave rollover.

Carries unused entitlement of carry-over leave types from one year's
balance rows into the next year's `carried_over`. Only ACTIVE employees
are processed; each employee commits separately so one failure never
blocks the rest.
"""
import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from hrcore.core.config import settings
from hrcore.core.context import RequestContext
from hrcore.core.exceptions import ValidationError
from hrcore.models.employee import Employee, EmployeeStatus
from hrcore.models.leave_balance import LeaveBalance
from hrcore.models.leave_type import LeaveType
from hrcore.services.leave_service import LeaveLedgerService
from hrcore.services.proration import Number, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class RolloverEntry:
    employee_id: int
    employee_name: str
    leave_type_code: str
    unused: Decimal
    carried: Decimal
    warning: Optional[str] = None


@dataclass
class RolloverReport:
    from_year: int
    target_year: int
    dry_run: bool = False
    employees_processed: int = 0
    total_carried: Decimal = ZERO
    entries: List[RolloverEntry] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def carry_amount(entitlement: Number, used: Number, max_carry_over: Number) -> Tuple[Decimal, Decimal]:
    """
    (unused, carried) for one balance row.

    A max_carry_over of 0 means the carry is uncapped.
    """
    unused = max(ZERO, to_decimal(entitlement) - to_decimal(used))
    cap = to_decimal(max_carry_over or 0)
    carried = min(unused, cap) if cap > 0 else unused
    return unused, carried


def _check_year(from_year: int) -> None:
    low, high = settings.leave.rollover_min_year, settings.leave.rollover_max_year
    if not low <= from_year <= high:
        raise ValidationError(
            f"fromYear must be between {low} and {high}",
            details={"from_year": from_year},
        )


def _rollover_employee(
    db: Session,
    ledger: LeaveLedgerService,
    employee: Employee,
    leave_types: Dict[int, LeaveType],
    report: RolloverReport,
) -> List[RolloverEntry]:
    balances = db.query(LeaveBalance).filter(
        LeaveBalance.employee_id == employee.id,
        LeaveBalance.year == report.from_year,
        LeaveBalance.leave_type_id.in_(list(leave_types)),
    ).order_by(LeaveBalance.leave_type_id).all()

    entries = []
    for balance in balances:
        leave_type = leave_types[balance.leave_type_id]
        unused, carried = carry_amount(balance.entitlement, balance.used, leave_type.max_carry_over)

        warning = None
        pending = to_decimal(balance.pending or 0)
        if pending > 0:
            warning = f"{pending} days still pending"
            logger.warning(
                f"Rollover {report.from_year}: employee {employee.id} {leave_type.code} has {pending} pending day(s)"
            )

        entries.append(RolloverEntry(
            employee_id=employee.id,
            employee_name=employee.name,
            leave_type_code=leave_type.code,
            unused=unused,
            carried=carried,
            warning=warning,
        ))

        if report.dry_run:
            continue
        # Overwrite an existing target row so re-runs converge on the same value
        target = ledger.get_balance(employee.id, leave_type.id, report.target_year)
        if carried > 0 or target is not None:
            target = target or ledger.get_or_create_balance(employee, leave_type, report.target_year)
            target.carried_over = carried

    return entries


def rollover(
    db: Session,
    from_year: int,
    ctx: Optional[RequestContext] = None,
    dry_run: bool = False,
) -> RolloverReport:
    """
    Carry unused leave from `from_year` into `from_year + 1`.

    Args:
        db: Database session
        from_year: Source year
        ctx: Acting user; None when run by the operations script
        dry_run: Compute the report without writing anything

    Returns:
        RolloverReport with one entry per eligible balance row
    """
    if ctx is not None:
        ctx.require_role(settings.leave.rollover_roles, "run the year-end rollover")
    _check_year(from_year)

    report = RolloverReport(from_year=from_year, target_year=from_year + 1, dry_run=dry_run)
    leave_types = {
        lt.id: lt for lt in db.query(LeaveType).filter(LeaveType.carry_over.is_(True)).all()
    }
    if not leave_types:
        logger.warning("Rollover: no leave types are configured for carry-over")
        return report

    employees = db.query(Employee).filter(
        Employee.status == EmployeeStatus.ACTIVE.value
    ).order_by(Employee.id).all()
    ledger = LeaveLedgerService(db)

    for employee in employees:
        try:
            entries = _rollover_employee(db, ledger, employee, leave_types, report)
            if not dry_run:
                db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Rollover failed for employee {employee.id}: {e}", exc_info=True)
            report.errors.append({"employee_id": employee.id, "employee_name": employee.name, "error": str(e)})
            continue

        report.employees_processed += 1
        report.entries.extend(entries)
        report.total_carried += sum((entry.carried for entry in entries), ZERO)

    logger.info(
        f"Rollover {from_year} -> {from_year + 1}{' (dry run)' if dry_run else ''}: "
        f"{report.employees_processed} employees, {report.total_carried} days carried, {len(report.errors)} errors",
        extra={"actor_id": ctx.actor_id if ctx else "system"},
    )
    return report
