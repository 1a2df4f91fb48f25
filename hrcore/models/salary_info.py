from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from hrcore.database import Base

class SalaryInfo(Base):
    __tablename__ = "salary_infos"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), unique=True, nullable=False)
    basic_salary = Column(Numeric(12, 2), nullable=False)
    allowances = Column(Numeric(12, 2), default=0, nullable=False)
    bank_name = Column(String, nullable=True)
    bank_account_number = Column(String, nullable=True)
    cpf_applicable = Column(Boolean, default=True, nullable=False)
    # Overrides for the age-banded rates, in percent. NULL = use the age band.
    cpf_employee_rate = Column(Numeric(5, 2), nullable=True)
    cpf_employer_rate = Column(Numeric(5, 2), nullable=True)

    employee = relationship("Employee", back_populates="salary_info")
