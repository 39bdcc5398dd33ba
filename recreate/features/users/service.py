"""
User domain service.
- resolve_or_create_user(): login callback, idempotent on external_id
- get_user() / get_user_by_handle()
- get_own_profile() / get_public_profile() / update_profile()
- get_work_stats()
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert, update, and_, func
from sqlalchemy.exc import IntegrityError

from recreate.core.database import Database, users, works
from recreate.core.errors import ConflictError, NotFoundError, ValidationError
from recreate.core.logging import log_event
from recreate.features.plans.service import has_active_plan, list_plans, lock_user
from recreate.models.user import (
    ProfileUpdateRequest,
    PublicProfile,
    User,
    UserProfile,
    UserStatus,
    WorkStats,
    WorkStatusCounts,
)


def _row_to_user(row) -> User:
    return User(
        user_id=row.id,
        handle=row.handle,
        display_name=User.normalized_display_name(row.handle, row.display_name),
        avatar_url=row.avatar_url,
        description=row.description or "",
        status=UserStatus(row.status),
        created_at=row.created_at,
    )


def _clean_handle(handle: str) -> str:
    cleaned = (handle or "").strip().lstrip("@")
    if not cleaned:
        raise ValidationError("Handle is required")
    return cleaned


def get_user(db: Database, user_id: str) -> Optional[User]:
    with db.session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
    return _row_to_user(row) if row else None


def get_user_by_handle(db: Database, handle: str) -> Optional[User]:
    """Case-insensitive handle lookup."""
    cleaned = (handle or "").strip().lstrip("@")
    if not cleaned:
        return None
    with db.session() as session:
        row = session.execute(
            select(users).where(func.lower(users.c.handle) == cleaned.lower())
        ).first()
    return _row_to_user(row) if row else None


def _release_handle(session, handle: str, external_id: str, now: datetime) -> None:
    """
    The latest login owns a handle. An account still holding it under another
    identity gets a placeholder until its own next login refreshes it.
    """
    stale = session.execute(
        select(users.c.id, users.c.handle).where(
            and_(func.lower(users.c.handle) == handle.lower(), users.c.external_id != external_id)
        )
    ).first()
    if not stale:
        return
    session.execute(
        update(users)
        .where(users.c.id == stale.id)
        .values(handle=f"user-{stale.id}", updated_at=now)
    )
    log_event(
        "info",
        "user.handle_released",
        user_id=stale.id,
        event_type="identity",
        extra={"handle": stale.handle},
    )


def _write_identity(
    db: Database,
    external_id: str,
    handle: str,
    display_name: Optional[str],
    avatar_url: Optional[str],
) -> Tuple[User, bool]:
    now = datetime.now(timezone.utc)
    with db.session() as session:
        row = session.execute(
            select(users).where(users.c.external_id == external_id).with_for_update()
        ).first()

        if row:
            _release_handle(session, handle, external_id, now)
            session.execute(
                update(users)
                .where(users.c.id == row.id)
                .values(
                    handle=handle,
                    display_name=display_name,
                    avatar_url=avatar_url,
                    updated_at=now,
                )
            )
            user_id = row.id
            created = False
        else:
            user_id = str(uuid4())
            _release_handle(session, handle, external_id, now)
            session.execute(
                insert(users).values(
                    id=user_id,
                    external_id=external_id,
                    handle=handle,
                    display_name=display_name,
                    avatar_url=avatar_url,
                    description="",
                    status=UserStatus.UNAVAILABLE.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            created = True

        user = _row_to_user(
            session.execute(select(users).where(users.c.id == user_id)).first()
        )
    return user, created


def resolve_or_create_user(
    db: Database,
    external_id: str,
    handle: str,
    display_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> User:
    """
    Map an identity-provider subject to an internal user.

    Creates the user on first login (status unavailable: no plans yet) and
    refreshes handle/name/avatar on later logins. Handles follow the provider,
    so a stale holder of the same handle is moved to a placeholder.

    A concurrent login for the same subject can win the insert; the second
    attempt then finds that row and refreshes it.

    Raises:
        ValidationError: missing external id or handle
        ConflictError: handle still taken after the retry
    """
    if not external_id:
        raise ValidationError("External identity is required")
    handle = _clean_handle(handle)

    try:
        user, created = _write_identity(db, external_id, handle, display_name, avatar_url)
    except IntegrityError:
        try:
            user, created = _write_identity(db, external_id, handle, display_name, avatar_url)
        except IntegrityError:
            raise ConflictError(f"Handle @{handle} is already linked to another account")

    log_event(
        "info",
        "user.created" if created else "user.login",
        user_id=user.user_id,
        event_type="identity",
    )
    return user


def get_own_profile(db: Database, user_id: str) -> UserProfile:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return UserProfile(user=user, plans=list_plans(db, user_id, include_hidden=True))


def update_profile(db: Database, user_id: str, request: ProfileUpdateRequest) -> User:
    """
    Edit description and/or status.

    Raises:
        ValidationError: status set to available/available_hidden without an active plan
    """
    values = {}
    if request.description is not None:
        values["description"] = request.description
    with db.session() as session:
        lock_user(session, user_id)
        if request.status is not None:
            if request.status.accepts_requests and not has_active_plan(session, user_id):
                raise ValidationError(
                    "Add at least one visible price plan before accepting requests"
                )
            values["status"] = request.status.value
        if values:
            values["updated_at"] = datetime.now(timezone.utc)
            session.execute(update(users).where(users.c.id == user_id).values(**values))
        user = _row_to_user(session.execute(select(users).where(users.c.id == user_id)).first())

    if request.status is not None:
        log_event("info", "user.status_changed", user_id=user_id, event_type="availability",
                  extra={"status": user.status.value})
    return user


def get_public_profile(db: Database, handle: str) -> PublicProfile:
    user = get_user_by_handle(db, handle)
    if not user:
        raise NotFoundError("User not found")
    return PublicProfile(
        user_id=user.user_id,
        handle=user.handle,
        display_name=user.display_name or f"@{user.handle}",
        avatar_url=user.avatar_url,
        description=user.description,
        status=user.status,
        accepts_requests=user.status.accepts_requests,
        plans=list_plans(db, user.user_id, include_hidden=False),
    )


def get_work_stats(db: Database, user_id: str) -> WorkStats:
    """Work counts per status, split into received (as creator) and sent (as requester)."""
    with db.session() as session:
        received_rows = session.execute(
            select(works.c.status, func.count())
            .where(works.c.creator_id == user_id)
            .group_by(works.c.status)
        ).all()
        sent_rows = session.execute(
            select(works.c.status, func.count())
            .where(works.c.requester_id == user_id)
            .group_by(works.c.status)
        ).all()

    def _counts(rows) -> WorkStatusCounts:
        return WorkStatusCounts(**{status: int(count) for status, count in rows})

    return WorkStats(user_id=user_id, received=_counts(received_rows), sent=_counts(sent_rows))
