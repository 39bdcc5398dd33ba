"""
recreate/models/user.py
User models: one entity carries identity and seller profile.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from recreate.models.price_plan import PricePlan


class UserStatus(str, Enum):
    """Seller willingness to take new work."""

    AVAILABLE = "available"
    AVAILABLE_HIDDEN = "available_hidden"  # accepts requests, not advertised
    UNAVAILABLE = "unavailable"

    @property
    def accepts_requests(self) -> bool:
        return self is not UserStatus.UNAVAILABLE


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    handle: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    description: str = ""
    status: UserStatus = UserStatus.UNAVAILABLE
    created_at: datetime

    @staticmethod
    def normalized_display_name(handle: str, display_name: Optional[str] = None) -> str:
        if display_name and display_name.strip():
            return display_name.strip()
        return f"@{handle}"


class UserProfile(BaseModel):
    """Own profile: every plan, hidden ones included."""

    model_config = ConfigDict(frozen=True)

    user: User
    plans: List[PricePlan] = Field(default_factory=list)


class PublicProfile(BaseModel):
    """Profile as seen by requesters: only plans that can be ordered."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    handle: str
    display_name: str
    avatar_url: Optional[str] = None
    description: str = ""
    status: UserStatus
    accepts_requests: bool
    plans: List[PricePlan] = Field(default_factory=list)


class ProfileUpdateRequest(BaseModel):
    """Owner edits; omitted fields are left untouched."""

    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[UserStatus] = None


class WorkStatusCounts(BaseModel):
    requested: int = 0
    delivered: int = 0
    rejected: int = 0
    paid: int = 0


class WorkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    received: WorkStatusCounts
    sent: WorkStatusCounts
