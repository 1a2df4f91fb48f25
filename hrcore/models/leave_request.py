from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hrcore.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

class DayType(str, enum.Enum):
    FULL_DAY = "FULL_DAY"
    AM_HALF = "AM_HALF"
    PM_HALF = "PM_HALF"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days = Column(Numeric(6, 1), nullable=False) # fixed at creation (or owner edit while pending)
    day_type = Column(String, default=DayType.FULL_DAY.value, nullable=False)
    half_day_position = Column(String, nullable=True) # "first" | "last" on multi-day requests
    reason = Column(String, nullable=True)
    status = Column(String, default=LeaveStatus.PENDING.value, nullable=False, index=True)
    approver_id = Column(String, nullable=True) # actor id of the reviewer
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String, nullable=True)
    document_url = Column(String, nullable=True)
    document_file_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("Employee")
    leave_type = relationship("LeaveType")

    @property
    def year(self) -> int:
        return self.start_date.year
