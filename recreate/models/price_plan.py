"""
recreate/models/price_plan.py

Price plan model: a sellable offering owned by one creator.

Amounts are integer minor units of PAYMENT_CURRENCY. Works copy the amount
at creation time, so editing a plan never reprices existing work.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

MIN_PLAN_AMOUNT = 300


class PricePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    plan_id: str
    user_id: str
    title: str
    description: str = ""
    amount: int
    is_hidden: bool = False
    payment_link: Optional[str] = None
    created_at: datetime


class PricePlanRequest(BaseModel):
    """Create/replace payload. Range checks happen in the service (ValidationError)."""

    title: str = Field(max_length=200)
    description: str = Field(default="", max_length=5000)
    amount: int
    is_hidden: bool = False
    payment_link: Optional[str] = Field(default=None, max_length=2000)


class PlanMutationResult(BaseModel):
    """Mutation outcome plus non-fatal warnings (e.g. automatic status downgrade)."""

    model_config = ConfigDict(frozen=True)

    plan: Optional[PricePlan] = None
    warnings: List[str] = Field(default_factory=list)
