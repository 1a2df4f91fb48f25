from datetime import date
from decimal import Decimal

import pytest

from hrcore.core.exceptions import (
    ConfigurationMissingError,
    ForbiddenError,
    ImmutableRecordError,
    InvalidStateTransitionError,
    ValidationError,
)
from hrcore.models import Payslip
from hrcore.services import payroll_service

AS_OF = date(2026, 6, 1)


def test_pay_period_covers_whole_month():
    assert payroll_service.pay_period(6, 2026) == (date(2026, 6, 1), date(2026, 6, 30), date(2026, 6, 28))
    assert payroll_service.pay_period(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29), date(2024, 2, 28))


def test_pay_period_rejects_invalid_month():
    with pytest.raises(ValidationError):
        payroll_service.pay_period(13, 2026)


def test_generate_creates_payslip_with_reference_figures(db_session, make_employee, hr_ctx):
    employee = make_employee(basic_salary=3000, allowances=200)

    report = payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    assert report["created"] == 1
    assert report["skipped"] == 0
    assert report["errors"] == 0
    payslip = db_session.query(Payslip).filter_by(employee_id=employee.id).one()
    assert payslip.pay_period_start == date(2026, 6, 1)
    assert payslip.pay_period_end == date(2026, 6, 30)
    assert payslip.gross_salary == Decimal("3200")
    assert payslip.cpf_employee == Decimal("640")
    assert payslip.cpf_employer == Decimal("544")
    assert payslip.income_tax == Decimal("480")
    assert payslip.net_salary == Decimal("2080")
    assert payslip.status == "GENERATED"


def test_generate_is_idempotent_per_period(db_session, make_employee, hr_ctx):
    make_employee(basic_salary=3000, allowances=200)

    payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)
    second = payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    assert second["created"] == 0
    assert second["skipped"] == 1
    assert db_session.query(Payslip).count() == 1


def test_missing_salary_or_birth_date_is_skipped_not_fatal(db_session, make_employee, hr_ctx):
    make_employee(name="Complete", basic_salary=4000)
    make_employee(name="No Salary")
    make_employee(name="No DOB", basic_salary=4000, date_of_birth=None)

    report = payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    assert report["created"] == 1
    assert report["skipped"] == 2
    outcomes = {item["employee_name"]: item for item in report["details"]}
    assert outcomes["No Salary"]["outcome"] == "skipped"
    assert "salary" in outcomes["No Salary"]["reason"]
    assert "date of birth" in outcomes["No DOB"]["reason"]


def test_only_active_employees_are_paid(db_session, make_employee, hr_ctx):
    make_employee(name="Active", basic_salary=4000)
    make_employee(name="Gone", basic_salary=4000, status="TERMINATED")

    report = payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    assert report["total_employees"] == 1
    assert report["created"] == 1


def test_no_active_employees_is_configuration_missing(db_session, make_employee, hr_ctx):
    make_employee(status="RESIGNED", basic_salary=4000)
    with pytest.raises(ConfigurationMissingError):
        payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)


def test_generation_requires_finance_role(db_session, make_employee, manager_ctx, staff_ctx):
    employee = make_employee(basic_salary=4000)
    with pytest.raises(ForbiddenError):
        payroll_service.generate_payroll(db_session, 6, 2026, manager_ctx)
    with pytest.raises(ForbiddenError):
        payroll_service.generate_payroll(db_session, 6, 2026, staff_ctx(employee))


def test_cpf_exempt_employee_has_no_contributions(db_session, make_employee, hr_ctx):
    employee = make_employee(basic_salary=3000, allowances=200, cpf_applicable=False)
    payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    payslip = db_session.query(Payslip).filter_by(employee_id=employee.id).one()
    assert payslip.cpf_employee == 0
    assert payslip.net_salary == Decimal("2720")


def test_preview_does_not_persist(db_session, make_employee, admin_ctx):
    employee = make_employee(basic_salary=3000, allowances=200)
    preview = payroll_service.preview_payroll(db_session, employee.id, admin_ctx, bonus=800, as_of=AS_OF)

    assert preview["gross_salary"] == Decimal("4000")
    assert preview["cpf_employee"] == Decimal("800")
    assert db_session.query(Payslip).count() == 0


def test_preview_without_salary_is_configuration_missing(db_session, make_employee, admin_ctx):
    employee = make_employee()
    with pytest.raises(ConfigurationMissingError):
        payroll_service.preview_payroll(db_session, employee.id, admin_ctx)


def _generated_payslip(db_session, make_employee, ctx):
    employee = make_employee(basic_salary=3000, allowances=200)
    payroll_service.generate_payroll(db_session, 6, 2026, ctx, as_of=AS_OF)
    return db_session.query(Payslip).filter_by(employee_id=employee.id).one()


def test_adjust_recomputes_unpaid_payslip(db_session, make_employee, hr_ctx):
    payslip = _generated_payslip(db_session, make_employee, hr_ctx)

    adjusted = payroll_service.adjust_payslip(db_session, payslip.id, hr_ctx, overtime=800, other_deductions=50, as_of=AS_OF)

    assert adjusted["gross_salary"] == Decimal("4000")
    assert adjusted["cpf_employee"] == Decimal("800")
    assert adjusted["income_tax"] == Decimal("600")
    assert adjusted["net_salary"] == Decimal("2550")


def test_mark_paid_then_payslip_is_frozen(db_session, make_employee, hr_ctx):
    payslip = _generated_payslip(db_session, make_employee, hr_ctx)

    paid = payroll_service.mark_payslip_paid(db_session, payslip.id, hr_ctx)
    assert paid["status"] == "PAID"
    assert paid["paid_at"] is not None

    with pytest.raises(InvalidStateTransitionError):
        payroll_service.mark_payslip_paid(db_session, payslip.id, hr_ctx)
    with pytest.raises(ImmutableRecordError):
        payroll_service.adjust_payslip(db_session, payslip.id, hr_ctx, bonus=100)


def test_paid_payslip_rejects_direct_orm_writes(db_session, make_employee, hr_ctx):
    payslip = _generated_payslip(db_session, make_employee, hr_ctx)
    payroll_service.mark_payslip_paid(db_session, payslip.id, hr_ctx)

    payslip = db_session.get(Payslip, payslip.id)
    payslip.net_salary = Decimal("1")
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    payslip = db_session.get(Payslip, payslip.id)
    db_session.delete(payslip)
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    assert db_session.get(Payslip, payslip.id).net_salary == Decimal("2080")


def test_unpaid_payslip_can_still_be_deleted(db_session, make_employee, hr_ctx):
    payslip = _generated_payslip(db_session, make_employee, hr_ctx)
    db_session.delete(payslip)
    db_session.commit()
    assert db_session.query(Payslip).count() == 0


def test_staff_only_see_their_own_payslips(db_session, make_employee, hr_ctx, staff_ctx):
    alice = make_employee(name="Alice", basic_salary=3000)
    bob = make_employee(name="Bob", basic_salary=3000)
    payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    own = payroll_service.list_payslips(db_session, staff_ctx(alice))
    assert [p["employee_id"] for p in own] == [alice.id]
    with pytest.raises(ForbiddenError):
        payroll_service.list_payslips(db_session, staff_ctx(alice), employee_id=bob.id)
    assert len(payroll_service.list_payslips(db_session, hr_ctx)) == 2


def test_one_failing_employee_does_not_stop_the_batch(monkeypatch, db_session, make_employee, hr_ctx):
    broken_id = make_employee(name="Broken", basic_salary=3000).id
    healthy_id = make_employee(name="Healthy", basic_salary=3000).id
    calculate = payroll_service._breakdown_for

    def _failing_for_one(employee, salary, *args, **kwargs):
        if employee.id == broken_id:
            raise RuntimeError("rate table unavailable")
        return calculate(employee, salary, *args, **kwargs)

    monkeypatch.setattr(payroll_service, "_breakdown_for", _failing_for_one)
    report = payroll_service.generate_payroll(db_session, 6, 2026, hr_ctx, as_of=AS_OF)

    assert report["errors"] == 1
    assert report["created"] == 1
    outcomes = {item["employee_name"]: item for item in report["details"]}
    assert outcomes["Broken"]["outcome"] == "error"
    assert outcomes["Broken"]["reason"] == "rate table unavailable"
    assert outcomes["Healthy"]["outcome"] == "created"
    assert [p.employee_id for p in db_session.query(Payslip).all()] == [healthy_id]
