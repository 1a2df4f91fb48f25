from datetime import date
from decimal import Decimal

import pytest


@pytest.fixture
def employee(make_employee, leave_types):
    return make_employee(name="Erin Ng")


def _submit_sick_leave(client, auth_headers, employee, leave_types, start=None, end=None):
    year = date.today().year
    start = start or date(year, 3, 2)
    end = end or date(year, 3, 4)
    return client.post(
        "/api/leave/requests",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
        json={"leave_type_id": leave_types["SL"].id, "start_date": start.isoformat(), "end_date": end.isoformat()},
    )


def test_missing_identity_headers_is_401(client):
    response = client.get("/api/leave/requests")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_unknown_role_is_401(client, auth_headers):
    response = client.get("/api/leave/requests", headers=auth_headers(role="INTERN"))
    assert response.status_code == 401


def test_submit_and_approve_over_http(client, auth_headers, employee, leave_types):
    created = _submit_sick_leave(client, auth_headers, employee, leave_types)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "PENDING"
    assert Decimal(str(body["days"])) == 3

    approved = client.post(f"/api/leave/requests/{body['id']}/approve", headers=auth_headers("MANAGER", "mgr-9"))
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["approver_id"] == "mgr-9"

    again = client.post(f"/api/leave/requests/{body['id']}/approve", headers=auth_headers("MANAGER", "mgr-9"))
    assert again.status_code == 409
    error = again.json()["errors"][0]
    assert error["code"] == "INVALID_STATE_TRANSITION"
    assert error["details"]["current_status"] == "APPROVED"


def test_staff_cannot_approve_over_http(client, auth_headers, employee, leave_types):
    request_id = _submit_sick_leave(client, auth_headers, employee, leave_types).json()["id"]
    response = client.post(
        f"/api/leave/requests/{request_id}/approve",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
    )
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "FORBIDDEN"


def test_reject_with_reason_body(client, auth_headers, employee, leave_types):
    request_id = _submit_sick_leave(client, auth_headers, employee, leave_types).json()["id"]
    response = client.post(
        f"/api/leave/requests/{request_id}/reject",
        headers=auth_headers("HR", "hr-2"),
        json={"reason": "Clinic closed"},
    )
    assert response.status_code == 200
    assert response.json()["rejection_reason"] == "Clinic closed"


def test_unknown_action_is_422(client, auth_headers, employee, leave_types):
    request_id = _submit_sick_leave(client, auth_headers, employee, leave_types).json()["id"]
    response = client.post(f"/api/leave/requests/{request_id}/escalate", headers=auth_headers("ADMIN", "admin-1"))
    assert response.status_code == 422


def test_unknown_leave_type_is_404(client, auth_headers, employee):
    response = client.post(
        "/api/leave/requests",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
        json={"leave_type_id": 999, "start_date": "2026-03-02", "end_date": "2026-03-02"},
    )
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


def test_end_before_start_is_422(client, auth_headers, employee, leave_types):
    year = date.today().year
    response = _submit_sick_leave(client, auth_headers, employee, leave_types, date(year, 3, 4), date(year, 3, 2))
    assert response.status_code == 422
    assert response.json()["errors"][0]["code"] == "VALIDATION_ERROR"


def test_edit_pending_request(client, auth_headers, employee, leave_types):
    year = date.today().year
    request_id = _submit_sick_leave(client, auth_headers, employee, leave_types).json()["id"]
    response = client.patch(
        f"/api/leave/requests/{request_id}",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
        json={"start_date": date(year, 3, 2).isoformat(), "end_date": date(year, 3, 2).isoformat()},
    )
    assert response.status_code == 200
    assert Decimal(str(response.json()["days"])) == 1


def test_balances_endpoint(client, auth_headers, employee, leave_types):
    _submit_sick_leave(client, auth_headers, employee, leave_types)
    response = client.get(
        f"/api/leave/balances/{employee.id}",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
    )
    assert response.status_code == 200
    rows = {row["leave_type_code"]: row for row in response.json()}
    assert Decimal(str(rows["SL"]["pending"])) == 3
    assert Decimal(str(rows["SL"]["available"])) == 11


def test_list_requests_for_staff(client, auth_headers, employee, leave_types):
    _submit_sick_leave(client, auth_headers, employee, leave_types)
    response = client.get("/api/leave/requests", headers=auth_headers("STAFF", f"user-{employee.id}", employee.id))
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_rollover_endpoint_requires_admin(client, auth_headers, leave_types):
    forbidden = client.post("/api/leave/rollover", headers=auth_headers("HR", "hr-1"), json={"from_year": 2025})
    assert forbidden.status_code == 403

    response = client.post(
        "/api/leave/rollover",
        headers=auth_headers("ADMIN", "admin-1"),
        json={"from_year": 2025, "dry_run": True},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["target_year"] == 2026
    assert body["data"]["dry_run"] is True


def test_expense_claim_over_http(client, auth_headers, employee):
    staff = auth_headers("STAFF", f"user-{employee.id}", employee.id)
    created = client.post(
        "/api/expenses",
        headers=staff,
        json={"category_code": "OS", "description": "Printer ink", "amount": "18.90", "expense_date": "2026-03-02"},
    )
    assert created.status_code == 201
    claim_id = created.json()["id"]

    assert client.post(f"/api/expenses/{claim_id}/approve", headers=auth_headers("MANAGER", "mgr-1")).status_code == 200
    paid = client.post(
        f"/api/expenses/{claim_id}/pay",
        headers=auth_headers("HR", "hr-1"),
        json={"payment_reference": "TRX-77"},
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"


def test_edit_expense_claim_over_http(client, auth_headers, employee):
    staff = auth_headers("STAFF", f"user-{employee.id}", employee.id)
    claim = {"category_code": "OS", "description": "Printer ink", "amount": "18.90", "expense_date": "2026-03-02"}
    claim_id = client.post("/api/expenses", headers=staff, json=claim).json()["id"]

    edited = client.patch(f"/api/expenses/{claim_id}", headers=staff, json={**claim, "amount": "24.00"})
    assert edited.status_code == 200
    assert Decimal(str(edited.json()["amount"])) == Decimal("24.00")

    other = client.patch(f"/api/expenses/{claim_id}", headers=auth_headers("MANAGER", "mgr-1"), json=claim)
    assert other.status_code == 403

    client.post(f"/api/expenses/{claim_id}/approve", headers=auth_headers("MANAGER", "mgr-1"))
    decided = client.patch(f"/api/expenses/{claim_id}", headers=staff, json=claim)
    assert decided.status_code == 409


def test_zero_amount_expense_is_422(client, auth_headers, employee):
    response = client.post(
        "/api/expenses",
        headers=auth_headers("STAFF", f"user-{employee.id}", employee.id),
        json={"category_code": "OS", "description": "Nothing", "amount": "0", "expense_date": "2026-03-02"},
    )
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_payroll_generate_and_pay_over_http(client, auth_headers, make_employee):
    employee = make_employee(basic_salary=3000, allowances=200)
    hr = auth_headers("HR", "hr-1")

    generated = client.post("/api/payroll/generate", headers=hr, json={"month": 6, "year": 2026})
    assert generated.status_code == 200
    report = generated.json()["data"]
    assert report["created"] == 1
    payslip_id = report["details"][0]["payslip_id"]

    rerun = client.post("/api/payroll/generate", headers=hr, json={"month": 6, "year": 2026})
    assert rerun.json()["data"]["skipped"] == 1

    paid = client.post(f"/api/payroll/payslips/{payslip_id}/pay", headers=hr)
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"

    frozen = client.patch(f"/api/payroll/payslips/{payslip_id}", headers=hr, json={"bonus": "100"})
    assert frozen.status_code == 409
    assert frozen.json()["errors"][0]["code"] == "IMMUTABLE_RECORD"

    own = client.get("/api/payroll/payslips", headers=auth_headers("STAFF", f"user-{employee.id}", employee.id))
    assert [p["id"] for p in own.json()] == [payslip_id]


def test_payroll_generate_forbidden_for_manager(client, auth_headers, make_employee):
    make_employee(basic_salary=3000)
    response = client.post("/api/payroll/generate", headers=auth_headers("MANAGER", "mgr-1"), json={"month": 6, "year": 2026})
    assert response.status_code == 403


def test_payroll_generate_invalid_month_is_422(client, auth_headers):
    response = client.post("/api/payroll/generate", headers=auth_headers("HR", "hr-1"), json={"month": 13, "year": 2026})
    assert response.status_code == 422
