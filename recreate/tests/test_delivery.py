"""
Delivery orchestration: storage first, then the atomic transition.
"""

import io

import pytest

from recreate.core.errors import (
    DependencyError,
    InvalidStateError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from recreate.features.works.delivery import (
    build_file_key,
    deliver_upload,
    deliver_uploaded,
    issue_upload_url,
    safe_filename,
)
from recreate.features.works.service import create_work, download_name, get_work, reject_work
from recreate.models.work import CreateWorkRequest, WorkStatus


@pytest.fixture
def work(db, make_user, make_creator):
    creator, plan = make_creator("carol")
    requester = make_user("rick")
    created = create_work(
        db,
        requester.user_id,
        CreateWorkRequest(creator_id=creator.user_id, plan_id=plan.plan_id, description="A poster"),
    )
    return created, creator, requester


def _upload(db, storage, test_settings, work_id, actor_id, payload=b"PNGDATA", filename="poster.png"):
    return deliver_upload(
        db,
        storage,
        work_id,
        actor_id,
        filename=filename,
        data=io.BytesIO(payload),
        size=len(payload),
        content_type="image/png",
        settings_obj=test_settings,
    )


def test_safe_filename_strips_paths_and_symbols():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("C:\\Users\\me\\final art (v2).png") == "final_art_v2_.png"
    assert safe_filename("") == "deliverable"
    assert safe_filename(None) == "deliverable"


def test_file_key_layout():
    key = build_file_key("w-1", "out.zip")
    assert key.startswith("works/w-1/")
    assert key.endswith("-out.zip")
    assert download_name(key) == "out.zip"


def test_upload_then_transition(db, storage, test_settings, work):
    w, creator, requester = work

    result = _upload(db, storage, test_settings, w.work_id, creator.user_id)

    assert result.work.status == WorkStatus.DELIVERED
    assert result.work.file_key.startswith(f"works/{w.work_id}/")
    assert storage.objects[result.work.file_key] == b"PNGDATA"
    assert f"ttl={test_settings.DELIVERY_INITIAL_URL_TTL_SECONDS}" in result.delivery_url
    assert result.expires_in == test_settings.DELIVERY_INITIAL_URL_TTL_SECONDS


def test_non_creator_cannot_upload(db, storage, test_settings, work):
    w, _, requester = work
    with pytest.raises(NotFoundError):
        _upload(db, storage, test_settings, w.work_id, requester.user_id)
    assert storage.objects == {}


def test_upload_to_rejected_work_is_invalid_state(db, storage, test_settings, work):
    w, creator, _ = work
    reject_work(db, w.work_id, creator.user_id)
    with pytest.raises(InvalidStateError):
        _upload(db, storage, test_settings, w.work_id, creator.user_id)
    assert storage.objects == {}


def test_oversized_file_is_rejected_before_upload(db, storage, test_settings, work):
    w, creator, _ = work
    with pytest.raises(PayloadTooLargeError):
        _upload(db, storage, test_settings, w.work_id, creator.user_id, payload=b"x" * 2048)
    assert storage.objects == {}
    assert get_work(db, w.work_id, creator.user_id).status == WorkStatus.REQUESTED


def test_empty_file_is_rejected(db, storage, test_settings, work):
    w, creator, _ = work
    with pytest.raises(ValidationError):
        _upload(db, storage, test_settings, w.work_id, creator.user_id, payload=b"")


def test_storage_failure_leaves_work_requested(db, storage, test_settings, work):
    w, creator, _ = work
    storage.fail_put = True
    with pytest.raises(DependencyError):
        _upload(db, storage, test_settings, w.work_id, creator.user_id)
    assert get_work(db, w.work_id, creator.user_id).status == WorkStatus.REQUESTED


def test_lost_race_deletes_uploaded_object(db, storage, test_settings, work, monkeypatch):
    w, creator, _ = work

    # Creator rejects from another tab while the upload is in flight
    original_put = storage.put

    def put_then_reject(key, data, content_type=None, size=None):
        original_put(key, data, content_type=content_type, size=size)
        reject_work(db, w.work_id, creator.user_id)

    monkeypatch.setattr(storage, "put", put_then_reject)

    with pytest.raises(InvalidStateError):
        _upload(db, storage, test_settings, w.work_id, creator.user_id)

    assert storage.objects == {}
    assert len(storage.deleted) == 1
    assert get_work(db, w.work_id, creator.user_id).status == WorkStatus.REJECTED


def test_signing_failure_after_commit_still_delivers(db, storage, test_settings, work):
    w, creator, _ = work
    storage.fail_sign = True
    result = _upload(db, storage, test_settings, w.work_id, creator.user_id)
    assert result.work.status == WorkStatus.DELIVERED
    assert result.delivery_url == ""


def test_direct_upload_flow(db, storage, test_settings, work):
    w, creator, _ = work

    target = issue_upload_url(db, storage, w.work_id, creator.user_id, "clip.mp4", "video/mp4", test_settings)
    assert target.key.startswith(f"works/{w.work_id}/")
    assert "method=PUT" in target.url
    assert target.expires_in == test_settings.UPLOAD_URL_TTL_SECONDS

    # Client PUTs straight to the bucket
    storage.objects[target.key] = b"MP4"

    result = deliver_uploaded(db, storage, w.work_id, creator.user_id, target.key, test_settings)
    assert result.work.status == WorkStatus.DELIVERED
    assert result.work.file_key == target.key


def test_direct_upload_requires_existing_object(db, storage, test_settings, work):
    w, creator, _ = work
    key = build_file_key(w.work_id, "clip.mp4")
    with pytest.raises(ValidationError, match="not found"):
        deliver_uploaded(db, storage, w.work_id, creator.user_id, key, test_settings)


def test_direct_upload_key_must_belong_to_work(db, storage, test_settings, work):
    w, creator, _ = work
    storage.objects["works/other-work/1-x.png"] = b"x"
    with pytest.raises(ValidationError, match="does not belong"):
        deliver_uploaded(db, storage, w.work_id, creator.user_id, "works/other-work/1-x.png", test_settings)


def test_upload_url_only_for_creator(db, storage, test_settings, work):
    w, _, requester = work
    with pytest.raises(NotFoundError):
        issue_upload_url(db, storage, w.work_id, requester.user_id, settings_obj=test_settings)
