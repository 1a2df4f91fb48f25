from decimal import Decimal

import pytest

from hrcore.core.exceptions import ForbiddenError, ValidationError
from hrcore.models import LeaveBalance
from hrcore.services import rollover_service
from hrcore.services.rollover_service import carry_amount, rollover


def _seed_balance(db_session, employee, leave_type, year=2025, entitlement=14, used=0, pending=0, carried_over=0):
    balance = LeaveBalance(
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        year=year,
        entitlement=Decimal(str(entitlement)),
        used=Decimal(str(used)),
        pending=Decimal(str(pending)),
        carried_over=Decimal(str(carried_over)),
    )
    db_session.add(balance)
    db_session.commit()
    return balance


def _target(db_session, employee, leave_type, year=2026):
    db_session.expire_all()
    return db_session.query(LeaveBalance).filter_by(
        employee_id=employee.id, leave_type_id=leave_type.id, year=year
    ).first()


def test_carry_amount_respects_cap():
    assert carry_amount(14, 10, 2) == (Decimal("4"), Decimal("2"))
    assert carry_amount(14, 10, 0) == (Decimal("4"), Decimal("4"))
    assert carry_amount(14, 20, 0) == (Decimal("0"), Decimal("0"))


def test_cap_limits_carried_days(db_session, leave_types, make_employee):
    al = leave_types["AL"]
    al.max_carry_over = Decimal("2")
    db_session.commit()
    employee = make_employee()
    _seed_balance(db_session, employee, al, used=10)

    report = rollover(db_session, 2025)

    assert report.target_year == 2026
    assert report.entries[0].unused == Decimal("4")
    assert report.entries[0].carried == Decimal("2")
    target = _target(db_session, employee, al)
    assert target.carried_over == Decimal("2")
    assert target.entitlement == Decimal("14")
    assert target.used == 0
    assert target.pending == 0


def test_uncapped_type_carries_everything(db_session, leave_types, make_employee):
    employee = make_employee()
    _seed_balance(db_session, employee, leave_types["AL"], used=3.5)

    report = rollover(db_session, 2025)

    assert report.total_carried == Decimal("10.5")
    assert _target(db_session, employee, leave_types["AL"]).carried_over == Decimal("10.5")


def test_non_carry_over_type_gets_no_row(db_session, leave_types, make_employee):
    employee = make_employee()
    _seed_balance(db_session, employee, leave_types["SL"], used=1)

    report = rollover(db_session, 2025)

    assert report.entries == []
    assert _target(db_session, employee, leave_types["SL"]) is None


def test_rerun_overwrites_instead_of_accumulating(db_session, leave_types, make_employee):
    employee = make_employee()
    source = _seed_balance(db_session, employee, leave_types["AL"], used=10)

    rollover(db_session, 2025)
    rollover(db_session, 2025)
    assert _target(db_session, employee, leave_types["AL"]).carried_over == Decimal("4")

    # Source year corrected to zero unused: re-run must clear the earlier carry
    source = db_session.get(LeaveBalance, source.id)
    source.used = Decimal("14")
    db_session.commit()
    rollover(db_session, 2025)
    assert _target(db_session, employee, leave_types["AL"]).carried_over == 0


def test_existing_target_row_keeps_its_usage(db_session, leave_types, make_employee):
    employee = make_employee()
    al = leave_types["AL"]
    _seed_balance(db_session, employee, al, used=10)
    _seed_balance(db_session, employee, al, year=2026, used=2, pending=1)

    rollover(db_session, 2025)

    target = _target(db_session, employee, al)
    assert target.carried_over == Decimal("4")
    assert target.used == Decimal("2")
    assert target.pending == Decimal("1")


def test_dry_run_writes_nothing(db_session, leave_types, make_employee):
    employee = make_employee()
    _seed_balance(db_session, employee, leave_types["AL"], used=10)

    report = rollover(db_session, 2025, dry_run=True)

    assert report.dry_run is True
    assert report.total_carried == Decimal("4")
    assert _target(db_session, employee, leave_types["AL"]) is None


def test_pending_days_produce_warning(db_session, leave_types, make_employee):
    employee = make_employee()
    _seed_balance(db_session, employee, leave_types["AL"], used=5, pending=2)

    report = rollover(db_session, 2025)

    entry = report.entries[0]
    assert entry.warning is not None
    assert "pending" in entry.warning
    # Pending days are not deducted from the carry
    assert entry.carried == Decimal("9")


def test_inactive_employees_are_skipped(db_session, leave_types, make_employee):
    employee = make_employee(status="TERMINATED")
    _seed_balance(db_session, employee, leave_types["AL"], used=0)

    report = rollover(db_session, 2025)

    assert report.employees_processed == 0
    assert _target(db_session, employee, leave_types["AL"]) is None


def test_year_outside_supported_range(db_session, leave_types):
    with pytest.raises(ValidationError):
        rollover(db_session, 2019)
    with pytest.raises(ValidationError):
        rollover(db_session, 2101)


def test_only_admin_may_run_rollover(db_session, leave_types, hr_ctx, admin_ctx):
    with pytest.raises(ForbiddenError):
        rollover(db_session, 2025, ctx=hr_ctx)
    assert rollover(db_session, 2025, ctx=admin_ctx).errors == []


def test_report_serializes(db_session, leave_types, make_employee):
    employee = make_employee(name="Carol")
    _seed_balance(db_session, employee, leave_types["AL"], used=10)

    data = rollover(db_session, 2025).to_dict()

    assert data["from_year"] == 2025
    assert data["employees_processed"] == 1
    assert data["entries"][0]["employee_name"] == "Carol"
    assert data["entries"][0]["leave_type_code"] == "AL"


def test_one_failing_employee_is_rolled_back_and_the_rest_continue(monkeypatch, db_session, leave_types, make_employee):
    al = leave_types["AL"]
    broken = make_employee(name="Broken")
    healthy = make_employee(name="Healthy")
    broken_id = broken.id
    _seed_balance(db_session, broken, al, used=10)
    _seed_balance(db_session, healthy, al, used=10)
    carry = rollover_service._rollover_employee

    def _fails_after_writing(db, ledger, employee, leave_types, report):
        entries = carry(db, ledger, employee, leave_types, report)
        if employee.id == broken_id:
            raise RuntimeError("balance row locked")
        return entries

    monkeypatch.setattr(rollover_service, "_rollover_employee", _fails_after_writing)
    report = rollover(db_session, 2025)

    assert report.employees_processed == 1
    assert report.errors == [{"employee_id": broken_id, "employee_name": "Broken", "error": "balance row locked"}]
    assert [entry.employee_name for entry in report.entries] == ["Healthy"]
    assert _target(db_session, broken, al) is None
    assert _target(db_session, healthy, al).carried_over == Decimal("4")
