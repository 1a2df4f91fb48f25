from sqlalchemy import Column, Integer, String, Date, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from hrcore.database import Base
import enum

class EmployeeStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ON_LEAVE = "ON_LEAVE"
    TERMINATED = "TERMINATED"
    RESIGNED = "RESIGNED"

class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_code = Column(String, unique=True, index=True, nullable=False) # e.g. "EMP001"
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    start_date = Column(Date, nullable=True) # hire date, drives leave proration
    status = Column(String, default=EmployeeStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    salary_info = relationship("SalaryInfo", back_populates="employee", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Employee {self.employee_code}: {self.name}>"
