"""
recreate/models/work.py
Work (commission) models and the lifecycle transition table.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkStatus(str, Enum):
    """Work lifecycle: requested -> delivered -> paid, or requested -> rejected"""

    REQUESTED = "requested"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    PAID = "paid"


class WorkParty(str, Enum):
    REQUESTER = "requester"
    CREATOR = "creator"


@dataclass(frozen=True)
class Transition:
    action: str
    source: WorkStatus
    target: WorkStatus
    actor: WorkParty


DELIVER = Transition("deliver", WorkStatus.REQUESTED, WorkStatus.DELIVERED, WorkParty.CREATOR)
REJECT = Transition("reject", WorkStatus.REQUESTED, WorkStatus.REJECTED, WorkParty.CREATOR)
CONFIRM_PAYMENT = Transition("confirm_payment", WorkStatus.DELIVERED, WorkStatus.PAID, WorkParty.REQUESTER)

DOWNLOADABLE_STATUSES = frozenset({WorkStatus.DELIVERED, WorkStatus.PAID})


class Work(BaseModel):
    model_config = ConfigDict(frozen=True)

    work_id: str
    sequential_id: int = Field(description="Per-creator display number")
    requester_id: str
    creator_id: str
    plan_title: str = ""
    description: str
    amount: int = Field(description="Snapshot of the plan amount at creation")
    payment_link: Optional[str] = None
    status: WorkStatus
    file_key: Optional[str] = Field(default=None, description="Object-storage key of the deliverable")
    created_at: datetime
    updated_at: datetime
    delivered_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def party_of(self, user_id: str) -> Optional[WorkParty]:
        if user_id == self.creator_id:
            return WorkParty.CREATOR
        if user_id == self.requester_id:
            return WorkParty.REQUESTER
        return None


class Counterpart(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    handle: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class WorkSummary(BaseModel):
    """List row: the work plus whoever sits on the other side."""

    model_config = ConfigDict(frozen=True)

    work_id: str
    sequential_id: int
    plan_title: str = ""
    description: str
    amount: int
    status: WorkStatus
    has_deliverable: bool = False
    created_at: datetime
    counterpart: Counterpart


class CreateWorkRequest(BaseModel):
    creator_id: str
    plan_id: str
    description: str = Field(max_length=5000)
