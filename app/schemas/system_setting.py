from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Optional


class SystemSettingResponse(BaseModel):
    key: str
    value: Any
    description: Optional[str] = None
    category: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
