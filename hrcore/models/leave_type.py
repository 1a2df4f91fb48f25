from sqlalchemy import Column, Integer, String, Numeric, Boolean
from hrcore.database import Base

class LeaveType(Base):
    """Leave category configuration. Read-only to the ledger; changed by administrators."""
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False) # "AL", "MC", "NPL", ...
    name = Column(String, nullable=False)
    default_days = Column(Numeric(6, 1), default=0, nullable=False)
    carry_over = Column(Boolean, default=False, nullable=False)
    max_carry_over = Column(Numeric(6, 1), default=0, nullable=False) # 0 = unlimited
    prorated = Column(Boolean, default=False, nullable=False)
    half_day_allowed = Column(Boolean, default=False, nullable=False)
    enforce_balance = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<LeaveType {self.code}>"
