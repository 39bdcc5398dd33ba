"""
Delivery orchestration: object storage first, then the atomic transition.

The upload is the slow, failure-prone step, so it runs before (and outside)
the database transaction. If the transition then fails, e.g. the creator
rejected the work from another tab mid-upload, the orphaned object is
removed best-effort and the transition error propagates unchanged.
"""

import re
import time
from dataclasses import dataclass
from typing import BinaryIO, Optional

from recreate.core.config import settings, Settings
from recreate.core.database import Database
from recreate.core.errors import DependencyError, PayloadTooLargeError, ValidationError
from recreate.core.logging import log_event
from recreate.features.storage.provider import StorageError, StorageProvider
from recreate.features.works.service import check_transition, deliver_work, download_name
from recreate.models.work import DELIVER, Work

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_FILENAME_LENGTH = 120


@dataclass
class DeliveryResult:
    work: Work
    delivery_url: str
    expires_in: int


@dataclass
class UploadTarget:
    url: str
    key: str
    expires_in: int


def safe_filename(filename: Optional[str]) -> str:
    """Strip directories and anything outside [A-Za-z0-9._-]."""
    base = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not cleaned:
        cleaned = "deliverable"
    return cleaned[-MAX_FILENAME_LENGTH:]


def work_key_prefix(work_id: str) -> str:
    return f"works/{work_id}/"


def build_file_key(work_id: str, filename: Optional[str]) -> str:
    return f"{work_key_prefix(work_id)}{int(time.time() * 1000)}-{safe_filename(filename)}"


def _discard(storage: StorageProvider, key: str, work_id: str) -> None:
    try:
        storage.delete(key)
    except StorageError as e:
        log_event("warning", "delivery.cleanup_failed", work_id=work_id, event_type="delivery",
                  extra={"error": str(e)})


def _complete(
    db: Database,
    storage: StorageProvider,
    work_id: str,
    actor_id: str,
    file_key: str,
    cfg: Settings,
    cleanup_on_failure: bool,
) -> DeliveryResult:
    try:
        work = deliver_work(db, work_id, actor_id, file_key)
    except Exception:
        if cleanup_on_failure:
            _discard(storage, file_key, work_id)
        raise

    ttl = cfg.DELIVERY_INITIAL_URL_TTL_SECONDS
    try:
        url = storage.sign_get(file_key, ttl, download_name=download_name(file_key))
    except StorageError as e:
        # Delivered and committed; the requester can still use the download route
        log_event("warning", "delivery.link_failed", user_id=actor_id, work_id=work_id,
                  event_type="delivery", extra={"error": str(e)})
        url = ""
    return DeliveryResult(work=work, delivery_url=url, expires_in=ttl if url else 0)


def deliver_upload(
    db: Database,
    storage: StorageProvider,
    work_id: str,
    actor_id: str,
    filename: Optional[str],
    data: BinaryIO,
    size: int,
    content_type: Optional[str] = None,
    settings_obj: Optional[Settings] = None,
) -> DeliveryResult:
    """
    Creator uploads the deliverable through the API.

    Raises:
        NotFoundError / InvalidStateError: same rules as deliver_work
        ValidationError: empty file
        PayloadTooLargeError: file above MAX_DELIVERY_BYTES
        DependencyError: storage failed; the work is unchanged
    """
    cfg = settings_obj or settings
    check_transition(db, work_id, actor_id, DELIVER)

    if size <= 0:
        raise ValidationError("Delivery file is empty")
    if size > cfg.MAX_DELIVERY_BYTES:
        raise PayloadTooLargeError(f"Delivery file exceeds {cfg.MAX_DELIVERY_BYTES} bytes")

    file_key = build_file_key(work_id, filename)
    try:
        storage.put(file_key, data, content_type=content_type, size=size)
    except StorageError as e:
        log_event("error", "delivery.upload_failed", user_id=actor_id, work_id=work_id,
                  event_type="delivery", error_code="dependency_failure", extra={"error": str(e)})
        raise DependencyError("Could not store the delivery file, please retry")

    log_event("info", "delivery.uploaded", user_id=actor_id, work_id=work_id, event_type="delivery",
              extra={"size": size})
    return _complete(db, storage, work_id, actor_id, file_key, cfg, cleanup_on_failure=True)


def issue_upload_url(
    db: Database,
    storage: StorageProvider,
    work_id: str,
    actor_id: str,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
    settings_obj: Optional[Settings] = None,
) -> UploadTarget:
    """Signed PUT URL for a direct-to-bucket upload; the client then calls deliver with the key."""
    cfg = settings_obj or settings
    check_transition(db, work_id, actor_id, DELIVER)
    key = build_file_key(work_id, filename)
    try:
        url = storage.sign_put(key, cfg.UPLOAD_URL_TTL_SECONDS, content_type=content_type)
    except StorageError as e:
        raise DependencyError(f"Could not sign upload URL: {e}")
    return UploadTarget(url=url, key=key, expires_in=cfg.UPLOAD_URL_TTL_SECONDS)


def deliver_uploaded(
    db: Database,
    storage: StorageProvider,
    work_id: str,
    actor_id: str,
    file_key: str,
    settings_obj: Optional[Settings] = None,
) -> DeliveryResult:
    """Finish a direct upload: the key must belong to this work and exist in the bucket."""
    cfg = settings_obj or settings
    check_transition(db, work_id, actor_id, DELIVER)

    if not file_key or not file_key.startswith(work_key_prefix(work_id)) or ".." in file_key:
        raise ValidationError("file_key does not belong to this work")
    try:
        present = storage.exists(file_key)
    except StorageError as e:
        raise DependencyError(f"Could not verify the uploaded file: {e}")
    if not present:
        raise ValidationError("Uploaded file not found")

    # Object was put there by the client; leave it if the transition fails so they can retry
    return _complete(db, storage, work_id, actor_id, file_key, cfg, cleanup_on_failure=False)
