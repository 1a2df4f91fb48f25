from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey, DateTime, UniqueConstraint, event, inspect, select
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hrcore.database import Base
from hrcore.core.exceptions import ImmutableRecordError
import enum

class PayslipStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    GENERATED = "GENERATED"
    PAID = "PAID"

class Payslip(Base):
    __tablename__ = "payslips"
    __table_args__ = (
        UniqueConstraint("employee_id", "pay_period_start", "pay_period_end", name="uq_payslip_employee_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    pay_period_start = Column(Date, nullable=False)
    pay_period_end = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=False)
    basic_salary = Column(Numeric(12, 2), nullable=False)
    allowances = Column(Numeric(12, 2), default=0, nullable=False)
    overtime = Column(Numeric(12, 2), default=0, nullable=False)
    bonus = Column(Numeric(12, 2), default=0, nullable=False)
    gross_salary = Column(Numeric(12, 2), nullable=False)
    cpf_employee = Column(Numeric(12, 2), default=0, nullable=False)
    cpf_employer = Column(Numeric(12, 2), default=0, nullable=False)
    income_tax = Column(Numeric(12, 2), default=0, nullable=False)
    other_deductions = Column(Numeric(12, 2), default=0, nullable=False)
    total_deductions = Column(Numeric(12, 2), nullable=False)
    net_salary = Column(Numeric(12, 2), nullable=False)
    status = Column(String, default=PayslipStatus.GENERATED.value, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    employee = relationship("Employee")


def _was_paid(connection, target: Payslip) -> bool:
    """True when the persisted status (before pending changes) is PAID."""
    history = inspect(target).attrs.status.history
    previous = history.deleted or history.unchanged
    if previous:
        return previous[0] == PayslipStatus.PAID.value
    # Status was expired or never loaded; read the stored value
    table = Payslip.__table__
    stored = connection.execute(select(table.c.status).where(table.c.id == target.id)).scalar()
    return stored == PayslipStatus.PAID.value


@event.listens_for(Payslip, "before_update")
def _block_paid_payslip_update(mapper, connection, target):
    if not _was_paid(connection, target):
        return
    state = inspect(target)
    if any(state.attrs[attr.key].history.has_changes() for attr in mapper.column_attrs):
        raise ImmutableRecordError("Payslip", target.id)


@event.listens_for(Payslip, "before_delete")
def _block_paid_payslip_delete(mapper, connection, target):
    if _was_paid(connection, target):
        raise ImmutableRecordError("Payslip", target.id)
