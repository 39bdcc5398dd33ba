"""
recreate/api/notifications.py
FastAPI routes for the caller's notification log.
"""

from fastapi import APIRouter, Depends, Query

from recreate.api.deps import get_db
from recreate.core.auth import get_current_user_id
from recreate.core.database import Database
from recreate.features.notifications.service import list_notifications, mark_read, unread_count

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def read_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    """Newest first."""
    items = list_notifications(db, user_id, unread_only=unread_only, limit=limit)
    return {"success": True, "data": [n.model_dump(mode="json") for n in items], "count": len(items)}


@router.get("/unread-count")
def read_unread_count(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    return {"success": True, "data": {"count": unread_count(db, user_id)}}


@router.post("/{notification_id}/read")
def read_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    read_at = mark_read(db, notification_id, user_id)
    return {
        "success": True,
        "data": {
            "notification_id": notification_id,
            "is_read": True,
            "read_at": read_at.isoformat() if read_at else None,
        },
    }
