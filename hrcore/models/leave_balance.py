from sqlalchemy import Column, Integer, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from hrcore.database import Base

class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balance_employee_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    entitlement = Column(Numeric(6, 1), default=0, nullable=False) # configured allocation, unprorated
    carried_over = Column(Numeric(6, 1), default=0, nullable=False)
    used = Column(Numeric(6, 1), default=0, nullable=False)
    pending = Column(Numeric(6, 1), default=0, nullable=False)

    leave_type = relationship("LeaveType")
    employee = relationship("Employee")
