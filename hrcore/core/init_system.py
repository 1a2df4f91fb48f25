import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from hrcore.database import SessionLocal
from hrcore.models.leave_type import LeaveType

logger = logging.getLogger(__name__)

# code, name, default days, carry over, max carry over (0 = unlimited), prorated, half day, enforce balance
DEFAULT_LEAVE_TYPES = [
    ("AL", "Annual Leave", "14", True, "0", True, True, True),
    ("SL", "Sick Leave", "14", False, "0", False, False, True),
    ("MC", "Medical Leave", "14", False, "0", True, False, True),
    ("CL", "Compassionate Leave", "3", False, "0", False, False, True),
    ("ML", "Maternity Leave", "112", False, "0", False, False, True),
    ("PL", "Paternity Leave", "14", False, "0", False, False, True),
    ("NPL", "No Pay Leave", "0", False, "0", False, False, False),
]


def seed_leave_types(db: Session) -> int:
    """Insert any missing default leave types. Returns how many were created."""
    existing = {code for (code,) in db.query(LeaveType.code).all()}
    created = 0
    for code, name, days, carry, max_carry, prorated, half_day, enforce in DEFAULT_LEAVE_TYPES:
        if code in existing:
            continue
        db.add(LeaveType(
            code=code,
            name=name,
            default_days=Decimal(days),
            carry_over=carry,
            max_carry_over=Decimal(max_carry),
            prorated=prorated,
            half_day_allowed=half_day,
            enforce_balance=enforce,
        ))
        created += 1
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return created


def init_system_data(db: Optional[Session] = None):
    """
    Seeds the default leave-type catalogue when the table is empty.
    Existing catalogues are left alone; administrators own them.
    """
    session = db or SessionLocal()
    try:
        count = session.query(LeaveType).count()
        if count == 0:
            created = seed_leave_types(session)
            logger.info(f"Seeded {created} default leave types")
        else:
            logger.info(f"System initialization check: {count} leave type(s) found.")
    except Exception as e:
        session.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        if db is None:
            session.close()
