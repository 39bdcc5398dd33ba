"""
Notification log.

Append-only events addressed to the counterpart of whoever moved a work.
Rows are written inside the same transaction as the work transition, so a
transition and its notification commit (or roll back) together.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, and_, func
from sqlalchemy.orm import Session, aliased

from recreate.core.database import Database, notifications, users, works
from recreate.core.errors import NotFoundError
from recreate.models.notification import Notification, NotificationType
from recreate.models.work import Work, WorkParty, WorkStatus

STATUS_MESSAGES = {
    WorkStatus.DELIVERED: "Your request #{n} has been delivered.",
    WorkStatus.REJECTED: "Your request #{n} was rejected.",
    WorkStatus.PAID: "Payment for request #{n} was confirmed.",
}


def build_message(work: Work, type: NotificationType) -> str:
    if type is NotificationType.NEW_REQUEST:
        return f"New request #{work.sequential_id} received."
    template = STATUS_MESSAGES.get(work.status, "Request #{n} was updated.")
    return template.format(n=work.sequential_id)


def notify_work_event(session: Session, work: Work, type: NotificationType, actor: WorkParty) -> str:
    """Insert one notification for the party opposite `actor`. Returns its id."""
    recipient_id = work.creator_id if actor is WorkParty.REQUESTER else work.requester_id
    notification_id = str(uuid4())
    session.execute(
        insert(notifications).values(
            id=notification_id,
            user_id=recipient_id,
            work_id=work.work_id,
            type=type.value,
            message=build_message(work, type),
            is_read=False,
            created_at=datetime.now(timezone.utc),
        )
    )
    return notification_id


def list_notifications(db: Database, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    requester = aliased(users)
    creator = aliased(users)
    stmt = (
        select(
            notifications,
            works.c.sequential_id,
            works.c.status.label("work_status"),
            func.coalesce(requester.c.display_name, requester.c.handle).label("requester_name"),
            func.coalesce(creator.c.display_name, creator.c.handle).label("creator_name"),
        )
        .join(works, notifications.c.work_id == works.c.id)
        .join(requester, works.c.requester_id == requester.c.id)
        .join(creator, works.c.creator_id == creator.c.id)
        .where(notifications.c.user_id == user_id)
        .order_by(notifications.c.created_at.desc(), notifications.c.id)
        .limit(limit)
    )
    if unread_only:
        stmt = stmt.where(notifications.c.is_read.is_(False))

    with db.session() as session:
        rows = session.execute(stmt).all()

    return [
        Notification(
            notification_id=row.id,
            user_id=row.user_id,
            work_id=row.work_id,
            type=NotificationType(row.type),
            message=row.message,
            is_read=bool(row.is_read),
            created_at=row.created_at,
            read_at=row.read_at,
            sequential_id=row.sequential_id,
            work_status=WorkStatus(row.work_status),
            requester_name=row.requester_name,
            creator_name=row.creator_name,
        )
        for row in rows
    ]


def unread_count(db: Database, user_id: str) -> int:
    with db.session() as session:
        count = session.execute(
            select(func.count())
            .select_from(notifications)
            .where(and_(notifications.c.user_id == user_id, notifications.c.is_read.is_(False)))
        ).scalar()
    return int(count or 0)


def mark_read(db: Database, notification_id: str, user_id: str) -> Optional[datetime]:
    """Mark as read (idempotent). Someone else's notification looks missing."""
    with db.session() as session:
        row = session.execute(
            select(notifications).where(
                and_(notifications.c.id == notification_id, notifications.c.user_id == user_id)
            )
        ).first()
        if not row:
            raise NotFoundError("Notification not found")
        if row.is_read:
            return row.read_at
        session.execute(
            update(notifications)
            .where(notifications.c.id == notification_id)
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        # Return what was stored so repeat calls see the same value
        return session.execute(
            select(notifications.c.read_at).where(notifications.c.id == notification_id)
        ).scalar()
