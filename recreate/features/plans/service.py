"""
recreate/features/plans/service.py

Price-plan store and availability derivation.

Handles:
- Plan CRUD (owner only)
- has_active_plan() probe
- Automatic status downgrade when an owner loses their last active plan
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, delete, exists, and_
from sqlalchemy.orm import Session

from recreate.core.database import Database, price_plans, users
from recreate.core.errors import NotFoundError, ValidationError
from recreate.core.logging import log_event
from recreate.models.price_plan import MIN_PLAN_AMOUNT, PlanMutationResult, PricePlan, PricePlanRequest
from recreate.models.user import UserStatus

DOWNGRADE_WARNING = (
    "You no longer have an active price plan, so your status was changed to 'unavailable'."
)


def _row_to_plan(row) -> PricePlan:
    return PricePlan(
        plan_id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description or "",
        amount=row.amount,
        is_hidden=bool(row.is_hidden),
        payment_link=row.payment_link,
        created_at=row.created_at,
    )


def has_active_plan(session: Session, user_id: str) -> bool:
    """True when the user owns a plan with a positive amount that is not hidden."""
    stmt = select(
        exists().where(
            and_(
                price_plans.c.user_id == user_id,
                price_plans.c.amount > 0,
                price_plans.c.is_hidden.is_(False),
            )
        )
    )
    return bool(session.execute(stmt).scalar())


def lock_user(session: Session, user_id: str):
    """Row-lock the owner; plan writes, status writes and work creation all serialize here."""
    row = session.execute(
        select(users).where(users.c.id == user_id).with_for_update()
    ).first()
    if not row:
        raise NotFoundError("User not found")
    return row


def reconcile_availability(session: Session, user_id: str, current_status: str) -> Optional[str]:
    """Downgrade to unavailable when no active plan remains. Returns a warning if it did."""
    if current_status == UserStatus.UNAVAILABLE.value:
        return None
    if has_active_plan(session, user_id):
        return None
    session.execute(
        update(users)
        .where(users.c.id == user_id)
        .values(status=UserStatus.UNAVAILABLE.value, updated_at=datetime.now(timezone.utc))
    )
    log_event(
        "info",
        "user.status_downgraded",
        user_id=user_id,
        event_type="availability",
        extra={"previous_status": current_status},
    )
    return DOWNGRADE_WARNING


def _validate_plan_request(request: PricePlanRequest) -> None:
    if not request.title or not request.title.strip():
        raise ValidationError("Plan title is required")
    if request.amount < MIN_PLAN_AMOUNT:
        raise ValidationError(f"Plan amount must be at least {MIN_PLAN_AMOUNT}")


def _get_owned_plan_row(session: Session, user_id: str, plan_id: str):
    row = session.execute(
        select(price_plans).where(
            and_(price_plans.c.id == plan_id, price_plans.c.user_id == user_id)
        )
    ).first()
    if not row:
        raise NotFoundError("Price plan not found")
    return row


def list_plans(db: Database, user_id: str, include_hidden: bool = True) -> List[PricePlan]:
    """Plans ordered by amount; public callers pass include_hidden=False."""
    stmt = select(price_plans).where(price_plans.c.user_id == user_id)
    if not include_hidden:
        stmt = stmt.where(price_plans.c.is_hidden.is_(False), price_plans.c.amount > 0)
    stmt = stmt.order_by(price_plans.c.amount, price_plans.c.created_at)
    with db.session() as session:
        rows = session.execute(stmt).all()
    return [_row_to_plan(row) for row in rows]


def create_plan(db: Database, user_id: str, request: PricePlanRequest) -> PlanMutationResult:
    _validate_plan_request(request)
    now = datetime.now(timezone.utc)
    plan_id = str(uuid4())
    with db.session() as session:
        owner = lock_user(session, user_id)
        session.execute(
            insert(price_plans).values(
                id=plan_id,
                user_id=user_id,
                title=request.title.strip(),
                description=request.description or "",
                amount=request.amount,
                is_hidden=request.is_hidden,
                payment_link=request.payment_link or None,
                created_at=now,
                updated_at=now,
            )
        )
        warning = reconcile_availability(session, user_id, owner.status)
        row = _get_owned_plan_row(session, user_id, plan_id)
        plan = _row_to_plan(row)

    log_event("info", "plan.created", user_id=user_id, event_type="plan", extra={"plan_id": plan_id})
    return PlanMutationResult(plan=plan, warnings=[warning] if warning else [])


def update_plan(db: Database, user_id: str, plan_id: str, request: PricePlanRequest) -> PlanMutationResult:
    """Replace a plan's fields. Existing works keep their own snapshot."""
    _validate_plan_request(request)
    with db.session() as session:
        owner = lock_user(session, user_id)
        _get_owned_plan_row(session, user_id, plan_id)
        session.execute(
            update(price_plans)
            .where(and_(price_plans.c.id == plan_id, price_plans.c.user_id == user_id))
            .values(
                title=request.title.strip(),
                description=request.description or "",
                amount=request.amount,
                is_hidden=request.is_hidden,
                payment_link=request.payment_link or None,
                updated_at=datetime.now(timezone.utc),
            )
        )
        warning = reconcile_availability(session, user_id, owner.status)
        plan = _row_to_plan(_get_owned_plan_row(session, user_id, plan_id))

    log_event("info", "plan.updated", user_id=user_id, event_type="plan", extra={"plan_id": plan_id})
    return PlanMutationResult(plan=plan, warnings=[warning] if warning else [])


def delete_plan(db: Database, user_id: str, plan_id: str) -> PlanMutationResult:
    """Hard delete. Works referencing the plan are untouched."""
    with db.session() as session:
        owner = lock_user(session, user_id)
        _get_owned_plan_row(session, user_id, plan_id)
        session.execute(
            delete(price_plans).where(
                and_(price_plans.c.id == plan_id, price_plans.c.user_id == user_id)
            )
        )
        warning = reconcile_availability(session, user_id, owner.status)

    log_event("info", "plan.deleted", user_id=user_id, event_type="plan", extra={"plan_id": plan_id})
    return PlanMutationResult(plan=None, warnings=[warning] if warning else [])
