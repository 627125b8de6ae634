from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.system_setting import SystemSetting
from app.services.base import BaseService

SYSTEM_AUDIT_CATEGORY = "system_audit"


class SystemSettingsStore(BaseService):
    """Key/value JSON settings; batch jobs record their last run here."""

    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, key: str) -> Optional[SystemSetting]:
        return self.db.scalar(
            select(SystemSetting)
            .where(SystemSetting.key == key, SystemSetting.is_active.is_(True))
            .execution_options(populate_existing=True)
        )

    def get_value(self, key: str, default: Any = None) -> Any:
        setting = self.get(key)
        return setting.value if setting is not None else default

    def upsert(self, key: str, value: Any, description: str, category: str = SYSTEM_AUDIT_CATEGORY) -> None:
        """Insert or overwrite a setting. Runs in the caller's transaction."""
        stmt = self.insert_stmt(SystemSetting).values(
            key=key,
            value=value,
            description=description,
            category=category,
            is_active=True,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "value": stmt.excluded.value,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "updated_at": func.now(),
            },
        )
        self.db.execute(stmt)
