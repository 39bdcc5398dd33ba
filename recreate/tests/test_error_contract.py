"""Tests for normalized error responses."""

from fastapi.testclient import TestClient

from recreate.main import create_app


def _assert_envelope(resp, code):
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert rid
    assert body["error"]["code"] == code
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_validation_error_has_standard_shape(client, make_user, auth_headers):
    user = make_user("amy")
    resp = client.post("/users/me/plans", headers=auth_headers(user), json={"title": "x", "amount": 1})
    assert resp.status_code == 400
    _assert_envelope(resp, "validation_error")


def test_unauthenticated_shape(client):
    resp = client.get("/works/sent")
    assert resp.status_code == 401
    _assert_envelope(resp, "unauthenticated")


def test_unknown_route_is_normalized(client):
    resp = client.get("/definitely/not/here")
    assert resp.status_code == 404
    _assert_envelope(resp, "not_found")


def test_provided_request_id_is_echoed_in_error(client):
    resp = client.get("/works/sent", headers={"X-Request-Id": "rid-abc"})
    assert resp.headers["x-request-id"] == "rid-abc"
    assert resp.json()["error"]["request_id"] == "rid-abc"


def test_unexpected_failure_is_generic_500(test_settings, db, storage, payments, make_user, auth_headers, monkeypatch):
    app = create_app(settings_obj=test_settings, database=db, storage=storage, payments=payments)
    client = TestClient(app, raise_server_exceptions=False)
    user = make_user("amy")

    def boom(*args, **kwargs):
        raise RuntimeError("secret internals")

    monkeypatch.setattr("recreate.api.works.list_sent", boom)

    resp = client.get("/works/sent", headers=auth_headers(user))
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "secret internals" not in resp.text


def test_missing_storage_is_503(test_settings, db, make_user, make_creator, auth_headers):
    app = create_app(settings_obj=test_settings, database=db, storage=None, payments=None)
    client = TestClient(app)
    creator, plan = make_creator("carol")
    resp = client.get("/works/whatever/delivery", headers=auth_headers(creator))
    assert resp.status_code == 503
    _assert_envelope(resp, "dependency_failure")
