import logging
from app.core.config import settings
from app.database import SessionLocal
from app.services.leave_types import LeaveTypeRegistry

logger = logging.getLogger(__name__)

def init_system_data():
    """
    Seeds reference data the workflow cannot run without: the auto-enrolled
    leave types. Users come from the identity service and are not created here.
    """
    if settings.environment == "testing":
        return

    db = SessionLocal()
    try:
        created = LeaveTypeRegistry(db).seed_defaults()
        if created:
            logger.info(f"✓ Seeded {created} default leave type(s)")
        else:
            logger.info("System initialization check: default leave types present.")
    finally:
        db.close()
