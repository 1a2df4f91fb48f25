# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    employee, leave_type, leave_balance, leave_request,
    salary_info, payslip, expense_claim, calendar_event, audit_log
)

# Explicit class exports for cleaner imports
from .employee import Employee, EmployeeStatus
from .leave_type import LeaveType
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus, DayType
from .salary_info import SalaryInfo
from .payslip import Payslip, PayslipStatus
from .expense_claim import ExpenseClaim, ExpenseStatus
from .calendar_event import CalendarEvent
from .audit_log import AuditLog

__all__ = [
    "Employee",
    "EmployeeStatus",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "DayType",
    "SalaryInfo",
    "Payslip",
    "PayslipStatus",
    "ExpenseClaim",
    "ExpenseStatus",
    "CalendarEvent",
    "AuditLog",
]
