from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, DateTime
from sqlalchemy.sql import func
from hrcore.database import Base

LEAVE_EVENT_TYPE = "LEAVE"
LEAVE_EVENT_COLOR = "#f59e0b"

class CalendarEvent(Base):
    """Absence marker shown on the shared calendar for approved leave."""
    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    all_day = Column(Boolean, default=True, nullable=False)
    event_type = Column(String, default=LEAVE_EVENT_TYPE, nullable=False)
    color = Column(String, default=LEAVE_EVENT_COLOR)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
