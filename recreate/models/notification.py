from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from recreate.models.work import WorkStatus


class NotificationType(str, Enum):
    NEW_REQUEST = "new_request"
    STATUS_CHANGED = "status_changed"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    notification_id: str
    user_id: str
    work_id: str
    type: NotificationType
    message: str
    is_read: bool = False
    created_at: datetime
    read_at: Optional[datetime] = None
    # Joined from the work for display
    sequential_id: Optional[int] = None
    work_status: Optional[WorkStatus] = None
    requester_name: Optional[str] = None
    creator_name: Optional[str] = None
