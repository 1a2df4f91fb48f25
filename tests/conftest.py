import pytest
import os
from datetime import date
from decimal import Decimal

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_LEAVE_TYPES"] = "false"

from hrcore.database import Base, SessionLocal, engine, get_db
from hrcore.main import app
from hrcore.core.context import RequestContext, UserRole
from hrcore.core.init_system import seed_leave_types
from hrcore.models import Employee, LeaveType, SalaryInfo
from fastapi.testclient import TestClient


@pytest.fixture(scope="function", autouse=True)
def setup_database():
    """Fresh schema per test; services commit, so there is no outer transaction to roll back."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def leave_types(db_session):
    """The default catalogue, keyed by code."""
    seed_leave_types(db_session)
    return {lt.code: lt for lt in db_session.query(LeaveType).all()}


@pytest.fixture(scope="function")
def make_employee(db_session):
    counter = {"n": 0}

    def _make(
        name="Staff Member",
        start_date=date(2020, 6, 15),
        date_of_birth=date(1986, 1, 1),
        status="ACTIVE",
        basic_salary=None,
        allowances=0,
        **salary_kwargs,
    ):
        counter["n"] += 1
        employee = Employee(
            employee_code=f"EMP{counter['n']:03d}",
            name=name,
            email=f"emp{counter['n']}@example.com",
            start_date=start_date,
            date_of_birth=date_of_birth,
            status=status,
        )
        db_session.add(employee)
        db_session.flush()
        if basic_salary is not None:
            db_session.add(SalaryInfo(
                employee_id=employee.id,
                basic_salary=Decimal(str(basic_salary)),
                allowances=Decimal(str(allowances)),
                bank_name="DBS",
                bank_account_number="123-456-789",
                **salary_kwargs,
            ))
        db_session.commit()
        db_session.refresh(employee)
        return employee
    return _make


@pytest.fixture(scope="function")
def staff_ctx():
    def _ctx(employee):
        return RequestContext(actor_id=f"user-{employee.id}", role=UserRole.STAFF, employee_id=employee.id)
    return _ctx


@pytest.fixture(scope="function")
def manager_ctx():
    return RequestContext(actor_id="manager-1", role=UserRole.MANAGER)


@pytest.fixture(scope="function")
def hr_ctx():
    return RequestContext(actor_id="hr-1", role=UserRole.HR)


@pytest.fixture(scope="function")
def admin_ctx():
    return RequestContext(actor_id="admin-1", role=UserRole.ADMIN)


@pytest.fixture(scope="function")
def auth_headers():
    """Gateway identity headers for API tests."""
    def _headers(role="STAFF", actor_id="user-1", employee_id=None):
        headers = {"X-Actor-Id": actor_id, "X-Actor-Role": role}
        if employee_id is not None:
            headers["X-Employee-Id"] = str(employee_id)
        return headers
    return _headers


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
