import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    title: str
    message: str
    category: str
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True
