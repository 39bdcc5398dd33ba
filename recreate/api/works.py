"""
recreate/api/works.py
FastAPI routes for works (commissions): creation, listings, lifecycle
actions, delivery and checkout.
"""

import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field

from recreate.api.deps import get_db, get_payments, get_settings, get_storage
from recreate.core.auth import get_current_user_id
from recreate.core.config import Settings
from recreate.core.database import Database
from recreate.core.errors import ValidationError
from recreate.features.payments.service import get_checkout_url
from recreate.features.works.delivery import deliver_upload, deliver_uploaded, issue_upload_url
from recreate.features.works.service import (
    confirm_payment,
    create_work,
    get_deliverable_url,
    get_work,
    list_received,
    list_sent,
    reject_work,
)
from recreate.models.work import CreateWorkRequest, WorkStatus

router = APIRouter(prefix="/works", tags=["works"])


class UploadUrlRequest(BaseModel):
    filename: Optional[str] = Field(default=None, max_length=255)
    content_type: Optional[str] = Field(default=None, max_length=255)


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


@router.post("", status_code=201)
def request_work(
    request: CreateWorkRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    """
    Send a request to a creator.

    Request body:
        creator_id: string
        plan_id: string
        description: string (non-empty)
    """
    work = create_work(db, user_id, request)
    return {"success": True, "data": work.model_dump(mode="json")}


@router.get("/received")
def received_works(
    status: Optional[WorkStatus] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    """Works where the caller is the creator, newest first."""
    items = list_received(db, user_id, status)
    return {"success": True, "data": [w.model_dump(mode="json") for w in items], "count": len(items)}


@router.get("/sent")
def sent_works(
    status: Optional[WorkStatus] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    """Works where the caller is the requester, newest first."""
    items = list_sent(db, user_id, status)
    return {"success": True, "data": [w.model_dump(mode="json") for w in items], "count": len(items)}


@router.get("/{work_id}")
def read_work(work_id: str, user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    work = get_work(db, work_id, user_id)
    return {"success": True, "data": work.model_dump(mode="json")}


@router.post("/{work_id}/upload-url")
def create_upload_url(
    work_id: str,
    request: Optional[UploadUrlRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
    storage=Depends(get_storage),
    cfg: Settings = Depends(get_settings),
):
    """Signed PUT URL for uploading the deliverable straight to storage."""
    request = request or UploadUrlRequest()
    target = issue_upload_url(db, storage, work_id, user_id, request.filename, request.content_type, cfg)
    return {"success": True, "data": {"url": target.url, "key": target.key, "expires_in": target.expires_in}}


@router.post("/{work_id}/deliver")
def deliver(
    work_id: str,
    file: Optional[UploadFile] = File(None),
    file_key: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
    storage=Depends(get_storage),
    cfg: Settings = Depends(get_settings),
):
    """
    Deliver the finished work (creator only, status requested).

    Form fields (one of):
        file: the deliverable
        file_key: key returned by /upload-url after a direct upload
    """
    if file is not None and file.filename:
        result = deliver_upload(
            db,
            storage,
            work_id,
            user_id,
            filename=file.filename,
            data=file.file,
            size=_upload_size(file),
            content_type=file.content_type,
            settings_obj=cfg,
        )
    elif file_key:
        result = deliver_uploaded(db, storage, work_id, user_id, file_key, cfg)
    else:
        raise ValidationError("A delivery file is required")

    data = result.work.model_dump(mode="json")
    data["delivery_url"] = result.delivery_url
    data["delivery_url_expires_in"] = result.expires_in
    return {"success": True, "data": data}


@router.post("/{work_id}/reject")
def reject(work_id: str, user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    work = reject_work(db, work_id, user_id)
    return {"success": True, "data": work.model_dump(mode="json")}


@router.post("/{work_id}/paid")
def mark_paid(work_id: str, user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    """Requester confirms payment was sent (delivered -> paid)."""
    work = confirm_payment(db, work_id, user_id)
    return {"success": True, "data": work.model_dump(mode="json")}


@router.get("/{work_id}/delivery")
def download_link(
    work_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
    storage=Depends(get_storage),
    cfg: Settings = Depends(get_settings),
):
    """Short-lived download URL for either party of a delivered or paid work."""
    ttl = cfg.DELIVERY_URL_TTL_SECONDS
    url = get_deliverable_url(db, storage, work_id, user_id, ttl_seconds=ttl)
    return {"success": True, "data": {"url": url, "expires_in": ttl}}


@router.post("/{work_id}/checkout")
def checkout(
    work_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
    payments=Depends(get_payments),
    cfg: Settings = Depends(get_settings),
):
    """Payment page for a delivered work: stored payment link, else a Stripe checkout."""
    url = get_checkout_url(db, payments, work_id, user_id, cfg)
    return {"success": True, "data": {"url": url}}
