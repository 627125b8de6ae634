from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from app.models.audit_log import AuditLog
from app.services.base import BaseService


def _sanitize(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return _sanitize(obj.model_dump())
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        user_id: Optional[int],
        user_role: Optional[str],
        details: dict,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ):
        """
        Append an audit entry to the current session.

        Not committed here: the entry lands in the caller's transaction, so a
        rolled-back transition leaves no trail claiming it happened.
        """
        try:
            db_log = AuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                user_role=user_role,
                details=_sanitize(details),
                before_state=_sanitize(before_state),
                after_state=_sanitize(after_state)
            )
            self.db.add(db_log)
            self.db.flush()
            return db_log
        except Exception as e:
            self._logger.error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None

    def log_operational_event(self, event_type: str, status: str, details: dict):
        """
        Batch jobs and other events with no acting user.
        """
        return self.log_action(
            action=f"ops_{event_type}",
            entity_type="system",
            entity_id=None,
            user_id=None,
            user_role="system",
            details={**details, "ops_status": status},
        )

    @staticmethod
    def log(db, *args, **kwargs):
        service = AuditService(db)
        return service.log_action(*args, **kwargs)
