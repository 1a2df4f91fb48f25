"""
Payroll Service Layer

Payslip generation, preview, adjustment and settlement. Calculation itself
lives in `hrcore.services.cpf`; this module owns the persistence rules:

- one payslip per (employee, pay period); re-running a period skips
- generation is a batch: each payslip commits on its own, and one
  employee's failure never aborts the rest
- PAID payslips are immutable (enforced here and by ORM listeners)
"""

import calendar
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrcore.core.config import settings
from hrcore.core.context import RequestContext
from hrcore.core.exceptions import (
    ConfigurationMissingError,
    ForbiddenError,
    ImmutableRecordError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from hrcore.models.employee import Employee, EmployeeStatus
from hrcore.models.payslip import Payslip, PayslipStatus
from hrcore.models.salary_info import SalaryInfo
from hrcore.services.cpf import PayrollBreakdown, calculate_payroll
from hrcore.services.proration import Number

logger = logging.getLogger(__name__)


def pay_period(month: int, year: int) -> Tuple[date, date, date]:
    """
    Period boundaries for a payroll month.

    Returns:
        (first day, last day, payment date); the configured payment day is
        clamped to the month length.
    """
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", details={"month": month})
    if year < 1900:
        raise ValidationError("Invalid payroll year", details={"year": year})
    last_day = calendar.monthrange(year, month)[1]
    payment_day = min(max(settings.payroll.payment_day, 1), last_day)
    return date(year, month, 1), date(year, month, last_day), date(year, month, payment_day)


def validate_payroll_prerequisites(employee: Employee) -> Dict[str, Any]:
    """
    Check that an employee has what a payslip needs.

    Missing salary info or date of birth are errors (the employee is
    skipped); missing bank details only warn.
    """
    errors = []
    warnings = []
    salary = employee.salary_info

    if salary is None:
        errors.append("No salary information configured")
    elif salary.basic_salary is None or salary.basic_salary < 0:
        errors.append("Invalid basic salary")
    if employee.date_of_birth is None:
        errors.append("No date of birth recorded (required for CPF age band)")

    if salary is not None and not salary.bank_account_number:
        warnings.append("Missing bank account number")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "employee_id": employee.id,
    }


def _breakdown_for(
    employee: Employee,
    salary: SalaryInfo,
    overtime: Number = 0,
    bonus: Number = 0,
    other_deductions: Number = 0,
    as_of: Optional[date] = None,
) -> PayrollBreakdown:
    return calculate_payroll(
        basic_salary=salary.basic_salary,
        allowances=salary.allowances or 0,
        date_of_birth=employee.date_of_birth,
        overtime=overtime,
        bonus=bonus,
        other_deductions=other_deductions,
        today=as_of,
        cpf_applicable=salary.cpf_applicable,
        cpf_employee_rate=salary.cpf_employee_rate,
        cpf_employer_rate=salary.cpf_employer_rate,
    )


def _apply_breakdown(payslip: Payslip, breakdown: PayrollBreakdown) -> None:
    for field in (
        "basic_salary", "allowances", "overtime", "bonus", "gross_salary",
        "cpf_employee", "cpf_employer", "income_tax", "other_deductions",
        "total_deductions", "net_salary",
    ):
        setattr(payslip, field, getattr(breakdown, field))


def _payslip_to_dict(payslip: Payslip) -> Dict[str, Any]:
    return {
        "id": payslip.id,
        "employee_id": payslip.employee_id,
        "employee_name": payslip.employee.name if payslip.employee else None,
        "pay_period_start": payslip.pay_period_start,
        "pay_period_end": payslip.pay_period_end,
        "payment_date": payslip.payment_date,
        "basic_salary": payslip.basic_salary,
        "allowances": payslip.allowances,
        "overtime": payslip.overtime,
        "bonus": payslip.bonus,
        "gross_salary": payslip.gross_salary,
        "cpf_employee": payslip.cpf_employee,
        "cpf_employer": payslip.cpf_employer,
        "income_tax": payslip.income_tax,
        "other_deductions": payslip.other_deductions,
        "total_deductions": payslip.total_deductions,
        "net_salary": payslip.net_salary,
        "status": payslip.status,
        "paid_at": payslip.paid_at,
    }


def generate_payroll(
    db: Session,
    month: int,
    year: int,
    ctx: RequestContext,
    as_of: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Generate payslips for every active employee for one month.

    Args:
        db: Database session
        month: Payroll month (1-12)
        year: Payroll year
        ctx: Acting user; must hold a finance role
        as_of: Date used for CPF age (defaults to today)

    Returns:
        Report dict: created / skipped / errors counts and per-employee details
    """
    ctx.require_role(settings.payroll.finance_roles, "generate payroll")
    period_start, period_end, payment_date = pay_period(month, year)

    employees = db.query(Employee).filter(
        Employee.status == EmployeeStatus.ACTIVE.value
    ).order_by(Employee.id).all()

    if not employees:
        raise ConfigurationMissingError("No active employees found", details={"month": month, "year": year})

    created = 0
    skipped = 0
    errors = 0
    details = []

    for emp in employees:
        entry = {"employee_id": emp.id, "employee_name": emp.name}
        try:
            existing = db.query(Payslip).filter(
                Payslip.employee_id == emp.id,
                Payslip.pay_period_start == period_start,
                Payslip.pay_period_end == period_end,
            ).first()
            if existing:
                skipped += 1
                details.append({**entry, "outcome": "skipped", "reason": "Payslip already exists",
                                "payslip_id": existing.id})
                continue

            check = validate_payroll_prerequisites(emp)
            if not check["valid"]:
                skipped += 1
                details.append({**entry, "outcome": "skipped", "reason": "; ".join(check["errors"])})
                continue

            breakdown = _breakdown_for(emp, emp.salary_info, as_of=as_of)
            payslip = Payslip(
                employee_id=emp.id,
                pay_period_start=period_start,
                pay_period_end=period_end,
                payment_date=payment_date,
                status=PayslipStatus.GENERATED.value,
            )
            _apply_breakdown(payslip, breakdown)
            db.add(payslip)
            try:
                db.commit()
            except IntegrityError:
                # A concurrent run created this period's payslip first
                db.rollback()
                skipped += 1
                details.append({**entry, "outcome": "skipped", "reason": "Payslip already exists"})
                continue
            except Exception:
                db.rollback()
                raise

            created += 1
            details.append({**entry, "outcome": "created", "payslip_id": payslip.id,
                            "net_salary": str(breakdown.net_salary), "warnings": check["warnings"]})
        except Exception as e:
            db.rollback()
            errors += 1
            logger.error(f"Payroll generation failed for employee {emp.id}: {e}", exc_info=True)
            details.append({**entry, "outcome": "error", "reason": str(e)})

    logger.info(
        f"Payroll {month:02d}/{year}: {created} created, {skipped} skipped, {errors} errors",
        extra={"actor_id": ctx.actor_id},
    )
    return {
        "month": month,
        "year": year,
        "pay_period_start": period_start,
        "pay_period_end": period_end,
        "total_employees": len(employees),
        "created": created,
        "skipped": skipped,
        "errors": errors,
        "details": details,
    }


def preview_payroll(
    db: Session,
    employee_id: int,
    ctx: RequestContext,
    overtime: Number = 0,
    bonus: Number = 0,
    other_deductions: Number = 0,
    as_of: Optional[date] = None,
) -> Dict[str, Any]:
    """Calculation only; nothing is persisted."""
    ctx.require_role(settings.payroll.finance_roles, "preview payroll")
    employee = db.get(Employee, employee_id)
    if not employee:
        raise NotFoundError("Employee", employee_id)
    check = validate_payroll_prerequisites(employee)
    if not check["valid"]:
        raise ConfigurationMissingError("; ".join(check["errors"]), details={"employee_id": employee_id})

    breakdown = _breakdown_for(employee, employee.salary_info, overtime, bonus, other_deductions, as_of)
    return {"employee_id": employee.id, "employee_name": employee.name, **breakdown.to_dict()}


def _get_payslip(db: Session, payslip_id: int) -> Payslip:
    payslip = db.query(Payslip).filter(Payslip.id == payslip_id).with_for_update().first()
    if not payslip:
        raise NotFoundError("Payslip", payslip_id)
    return payslip


def adjust_payslip(
    db: Session,
    payslip_id: int,
    ctx: RequestContext,
    overtime: Optional[Number] = None,
    bonus: Optional[Number] = None,
    other_deductions: Optional[Number] = None,
    as_of: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Recompute an unpaid payslip with new variable components.

    Basic salary and allowances stay as generated; omitted components keep
    their current value.
    """
    ctx.require_role(settings.payroll.finance_roles, "adjust payslips")
    payslip = _get_payslip(db, payslip_id)
    if payslip.status == PayslipStatus.PAID.value:
        raise ImmutableRecordError("Payslip", payslip.id)

    employee = payslip.employee
    if employee.date_of_birth is None:
        raise ConfigurationMissingError("No date of birth recorded", details={"employee_id": employee.id})
    salary = employee.salary_info

    breakdown = calculate_payroll(
        basic_salary=payslip.basic_salary,
        allowances=payslip.allowances,
        date_of_birth=employee.date_of_birth,
        overtime=payslip.overtime if overtime is None else overtime,
        bonus=payslip.bonus if bonus is None else bonus,
        other_deductions=payslip.other_deductions if other_deductions is None else other_deductions,
        today=as_of,
        cpf_applicable=salary.cpf_applicable if salary else True,
        cpf_employee_rate=salary.cpf_employee_rate if salary else None,
        cpf_employer_rate=salary.cpf_employer_rate if salary else None,
    )

    try:
        _apply_breakdown(payslip, breakdown)
        db.commit()
        db.refresh(payslip)
    except Exception:
        db.rollback()
        raise

    logger.info(f"Payslip {payslip.id} adjusted by {ctx.actor_id}: net {payslip.net_salary}")
    return _payslip_to_dict(payslip)


def mark_payslip_paid(db: Session, payslip_id: int, ctx: RequestContext) -> Dict[str, Any]:
    """GENERATED -> PAID. The payslip is frozen from here on."""
    ctx.require_role(settings.payroll.finance_roles, "mark payslips as paid")
    payslip = _get_payslip(db, payslip_id)
    if payslip.status != PayslipStatus.GENERATED.value:
        raise InvalidStateTransitionError(
            "Only generated payslips can be marked as paid", payslip.status, PayslipStatus.PAID.value
        )

    try:
        payslip.status = PayslipStatus.PAID.value
        payslip.paid_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(payslip)
    except Exception:
        db.rollback()
        raise

    logger.info(f"Payslip {payslip.id} marked as paid by {ctx.actor_id}")
    return _payslip_to_dict(payslip)


def list_payslips(db: Session, ctx: RequestContext, employee_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Payslip history, newest period first.

    Staff see only their own payslips; finance roles may list any employee
    (or everyone when employee_id is omitted).
    """
    if not ctx.has_role(settings.payroll.finance_roles):
        if employee_id is not None and not ctx.is_owner_of(employee_id):
            raise ForbiddenError("You can only view your own payslips")
        employee_id = ctx.employee_id
        if employee_id is None:
            return []

    query = db.query(Payslip)
    if employee_id is not None:
        query = query.filter(Payslip.employee_id == employee_id)
    payslips = query.order_by(Payslip.pay_period_start.desc(), Payslip.id.desc()).all()
    return [_payslip_to_dict(p) for p in payslips]
