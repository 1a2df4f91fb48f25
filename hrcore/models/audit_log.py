from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from hrcore.database import Base

class AuditLog(Base):
    """Append-only audit trail entry."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String, nullable=True, index=True)
    actor_role = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True) # e.g. "RESET_TO_PENDING"
    entity_type = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=True, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
