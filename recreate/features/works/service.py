"""
recreate/features/works/service.py

Work lifecycle engine. Every status change goes through `_apply_transition`:
one conditional UPDATE guarded by (id, expected status, actor column), plus
the notification insert, in a single transaction.

Failure classes:
- NotFoundError: work missing, caller not a party, or caller is the wrong party
  for the action (one message for all three so existence is not leaked)
- InvalidStateError: caller is the right party but the work is not in the
  source status (includes losing a race to a concurrent transition)
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, and_, func
from sqlalchemy.orm import Session

from recreate.core.config import settings
from recreate.core.database import Database, price_plans, users, works
from recreate.core.errors import DependencyError, InvalidStateError, NotFoundError, PermissionError, ValidationError
from recreate.core.logging import log_event
from recreate.features.notifications.service import notify_work_event
from recreate.features.storage.provider import StorageError
from recreate.models.notification import NotificationType
from recreate.models.user import UserStatus
from recreate.models.work import (
    CONFIRM_PAYMENT,
    DELIVER,
    DOWNLOADABLE_STATUSES,
    REJECT,
    Counterpart,
    CreateWorkRequest,
    Transition,
    Work,
    WorkParty,
    WorkStatus,
    WorkSummary,
)

NOT_FOUND_MESSAGE = "Work not found or not authorized"
NOT_ACCEPTING_MESSAGE = "Creator is not accepting requests"


def _row_to_work(row) -> Work:
    return Work(
        work_id=row.id,
        sequential_id=row.sequential_id,
        requester_id=row.requester_id,
        creator_id=row.creator_id,
        plan_title=row.plan_title or "",
        description=row.description,
        amount=row.amount,
        payment_link=row.payment_link,
        status=WorkStatus(row.status),
        file_key=row.file_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
        delivered_at=row.delivered_at,
        paid_at=row.paid_at,
    )


def _actor_column(party: WorkParty):
    return works.c.creator_id if party is WorkParty.CREATOR else works.c.requester_id


def _fetch_work(session: Session, work_id: str) -> Optional[Work]:
    row = session.execute(select(works).where(works.c.id == work_id)).first()
    return _row_to_work(row) if row else None


def _next_sequential_id(session: Session, creator_id: str) -> int:
    current = session.execute(
        select(func.max(works.c.sequential_id)).where(works.c.creator_id == creator_id)
    ).scalar()
    return (current or 0) + 1


def create_work(db: Database, requester_id: str, request: CreateWorkRequest) -> Work:
    """
    Open a commission against a creator's plan.

    Validation order: creator exists, plan belongs to creator, plan is active,
    creator accepts requests. The plan amount, title and payment link are
    copied onto the work. Emits `new_request` to the creator.
    """
    description = (request.description or "").strip()
    if not description:
        raise ValidationError("Description is required")
    if request.creator_id == requester_id:
        raise ValidationError("You cannot send a request to yourself")

    now = datetime.now(timezone.utc)
    work_id = str(uuid4())

    with db.session() as session:
        # Creator row lock: plan mutations and availability changes wait for us
        creator = session.execute(
            select(users).where(users.c.id == request.creator_id).with_for_update()
        ).first()
        if not creator:
            raise NotFoundError("Creator not found")

        plan = session.execute(
            select(price_plans).where(
                and_(
                    price_plans.c.id == request.plan_id,
                    price_plans.c.user_id == request.creator_id,
                )
            )
        ).first()
        accepting = UserStatus(creator.status).accepts_requests
        if not plan or plan.is_hidden or plan.amount <= 0:
            # Same failure class either way; an unavailable creator is the more useful message
            if not accepting:
                raise ValidationError(NOT_ACCEPTING_MESSAGE)
            raise ValidationError("Price plan is invalid or inactive")

        if not accepting:
            raise ValidationError(NOT_ACCEPTING_MESSAGE)

        session.execute(
            insert(works).values(
                id=work_id,
                sequential_id=_next_sequential_id(session, request.creator_id),
                requester_id=requester_id,
                creator_id=request.creator_id,
                plan_title=plan.title,
                description=description,
                amount=plan.amount,
                payment_link=plan.payment_link,
                status=WorkStatus.REQUESTED.value,
                file_key=None,
                created_at=now,
                updated_at=now,
            )
        )
        work = _fetch_work(session, work_id)
        notify_work_event(session, work, NotificationType.NEW_REQUEST, actor=WorkParty.REQUESTER)

    log_event(
        "info",
        "work.created",
        user_id=requester_id,
        work_id=work_id,
        event_type="work",
        extra={"creator_id": work.creator_id, "amount": work.amount, "sequential_id": work.sequential_id},
    )
    return work


def _classify_failure(work: Optional[Work], transition: Transition, actor_id: str) -> Exception:
    if work is None or work.party_of(actor_id) is not transition.actor:
        return NotFoundError(NOT_FOUND_MESSAGE)
    return InvalidStateError(
        f"Cannot {transition.action.replace('_', ' ')}: work is {work.status.value}, "
        f"expected {transition.source.value}"
    )


def check_transition(db: Database, work_id: str, actor_id: str, transition: Transition) -> Work:
    """Read-only precondition check (used before slow side effects such as uploads)."""
    with db.session() as session:
        work = _fetch_work(session, work_id)
    if work is None or work.party_of(actor_id) is not transition.actor or work.status is not transition.source:
        raise _classify_failure(work, transition, actor_id)
    return work


def _apply_transition(
    db: Database,
    work_id: str,
    actor_id: str,
    transition: Transition,
    extra_values: Optional[dict] = None,
) -> Work:
    now = datetime.now(timezone.utc)
    values = {"status": transition.target.value, "updated_at": now}
    if extra_values:
        values.update(extra_values)

    with db.session() as session:
        result = session.execute(
            update(works)
            .where(
                and_(
                    works.c.id == work_id,
                    works.c.status == transition.source.value,
                    _actor_column(transition.actor) == actor_id,
                )
            )
            .values(**values)
        )
        work = _fetch_work(session, work_id)
        if result.rowcount != 1:
            error = _classify_failure(work, transition, actor_id)
            log_event(
                "info",
                "work.transition_rejected",
                user_id=actor_id,
                work_id=work_id,
                event_type=transition.action,
                error_code=getattr(error, "code", None),
            )
            raise error
        notify_work_event(session, work, NotificationType.STATUS_CHANGED, actor=transition.actor)

    log_event(
        "info",
        "work.transition",
        user_id=actor_id,
        work_id=work_id,
        event_type=transition.action,
        extra={"from": transition.source.value, "to": transition.target.value},
    )
    return work


def deliver_work(db: Database, work_id: str, actor_id: str, file_key: str) -> Work:
    """requested -> delivered (creator only). The file must already be stored."""
    if not file_key:
        raise ValidationError("A delivery file is required")
    now = datetime.now(timezone.utc)
    return _apply_transition(db, work_id, actor_id, DELIVER, {"file_key": file_key, "delivered_at": now})


def reject_work(db: Database, work_id: str, actor_id: str) -> Work:
    """requested -> rejected (creator only)."""
    return _apply_transition(db, work_id, actor_id, REJECT)


def confirm_payment(db: Database, work_id: str, actor_id: str) -> Work:
    """delivered -> paid. Only the requester confirms they sent the money."""
    now = datetime.now(timezone.utc)
    return _apply_transition(db, work_id, actor_id, CONFIRM_PAYMENT, {"paid_at": now})


def get_work(db: Database, work_id: str, actor_id: str) -> Work:
    with db.session() as session:
        work = _fetch_work(session, work_id)
    if work is None or work.party_of(actor_id) is None:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return work


def get_deliverable_work(db: Database, work_id: str, actor_id: str) -> Work:
    """Either party, once a file exists and the work is delivered or paid."""
    work = get_work(db, work_id, actor_id)
    if work.status not in DOWNLOADABLE_STATUSES or not work.file_key:
        raise PermissionError("Deliverable is not available for this work")
    return work


def _list_works(db: Database, user_id: str, as_party: WorkParty, status: Optional[WorkStatus]) -> List[WorkSummary]:
    other_id = works.c.requester_id if as_party is WorkParty.CREATOR else works.c.creator_id
    stmt = (
        select(
            works,
            users.c.handle.label("other_handle"),
            users.c.display_name.label("other_display_name"),
            users.c.avatar_url.label("other_avatar_url"),
        )
        .join(users, users.c.id == other_id)
        .where(_actor_column(as_party) == user_id)
        .order_by(works.c.created_at.desc(), works.c.sequential_id.desc())
    )
    if status is not None:
        stmt = stmt.where(works.c.status == status.value)

    with db.session() as session:
        rows = session.execute(stmt).all()

    return [
        WorkSummary(
            work_id=row.id,
            sequential_id=row.sequential_id,
            plan_title=row.plan_title or "",
            description=row.description,
            amount=row.amount,
            status=WorkStatus(row.status),
            has_deliverable=bool(row.file_key),
            created_at=row.created_at,
            counterpart=Counterpart(
                user_id=row.requester_id if as_party is WorkParty.CREATOR else row.creator_id,
                handle=row.other_handle,
                display_name=row.other_display_name,
                avatar_url=row.other_avatar_url,
            ),
        )
        for row in rows
    ]


def list_received(db: Database, user_id: str, status: Optional[WorkStatus] = None) -> List[WorkSummary]:
    return _list_works(db, user_id, WorkParty.CREATOR, status)


def list_sent(db: Database, user_id: str, status: Optional[WorkStatus] = None) -> List[WorkSummary]:
    return _list_works(db, user_id, WorkParty.REQUESTER, status)


def get_deliverable_url(db: Database, storage, work_id: str, actor_id: str, ttl_seconds: Optional[int] = None) -> str:
    """Short-lived signed download link for either party."""
    work = get_deliverable_work(db, work_id, actor_id)
    ttl = ttl_seconds or settings.DELIVERY_URL_TTL_SECONDS
    try:
        url = storage.sign_get(work.file_key, ttl, download_name=download_name(work.file_key))
    except StorageError as e:
        raise DependencyError(f"Could not sign download URL: {e}")
    log_event("info", "work.download_link", user_id=actor_id, work_id=work_id, event_type="delivery")
    return url


def download_name(file_key: str) -> str:
    """Original filename: the last key segment minus its timestamp prefix."""
    name = file_key.rsplit("/", 1)[-1]
    prefix, sep, rest = name.partition("-")
    return rest if sep and prefix.isdigit() and rest else name
