from sqlalchemy.exc import OperationalError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from hrcore.models.calendar_event import CalendarEvent, LEAVE_EVENT_TYPE, LEAVE_EVENT_COLOR
from hrcore.models.leave_request import LeaveRequest
from hrcore.services.base import BaseService


class CalendarService(BaseService):
    """Absence markers on the shared calendar for approved leave."""

    def create_absence_marker(self, leave: LeaveRequest) -> CalendarEvent:
        """Adds the marker to the current transaction; the caller commits."""
        employee_name = leave.employee.name if leave.employee else f"Employee #{leave.employee_id}"
        leave_name = leave.leave_type.name if leave.leave_type else "Leave"
        event = CalendarEvent(
            title=f"{employee_name} - {leave_name}",
            start_date=leave.start_date,
            end_date=leave.end_date,
            all_day=True,
            event_type=LEAVE_EVENT_TYPE,
            color=LEAVE_EVENT_COLOR,
            leave_request_id=leave.id,
        )
        self.db.add(event)
        return event

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type(OperationalError),
        reraise=True
    )
    def delete_absence_markers(self, leave_request_id: int) -> int:
        """Idempotent: deleting markers that are already gone is a no-op."""
        deleted = self.db.query(CalendarEvent).filter(
            CalendarEvent.leave_request_id == leave_request_id
        ).delete(synchronize_session=False)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return deleted
