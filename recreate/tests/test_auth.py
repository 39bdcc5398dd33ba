"""
Identity-token verification (HS256 and offline RS256 with injected JWKS),
session tokens and the login route.
"""
import base64
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from recreate.core.auth import (
    decode_session_token,
    issue_session_token,
    set_jwks_provider_for_tests,
    verify_identity_token,
)
from recreate.core.database import Database
from recreate.core.errors import UnauthenticatedError
from recreate.features.users.service import get_user, get_user_by_handle, resolve_or_create_user


def _b64url_int(val: int) -> str:
    return base64.urlsafe_b64encode(val.to_bytes((val.bit_length() + 7) // 8, "big")).rstrip(b"=").decode("ascii")


def generate_rsa_material():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    pub_numbers = key.public_key().public_numbers()
    jwks = {
        "keys": [
            {
                "kid": "test-kid",
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "n": _b64url_int(pub_numbers.n),
                "e": _b64url_int(pub_numbers.e),
            }
        ]
    }
    return private_pem, jwks


@pytest.fixture(scope="module")
def rsa_material():
    return generate_rsa_material()


def _claims(**overrides):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": "x|12345",
        "preferred_username": "carol",
        "name": "Carol C.",
        "picture": "https://img.test/carol.png",
        "iat": now,
        "exp": now + timedelta(minutes=5),
    }
    claims.update(overrides)
    return claims


def _hs_token(test_settings, **overrides):
    return jwt.encode(_claims(**overrides), test_settings.IDP_JWT_SECRET, algorithm="HS256")


class TestIdentityToken:
    def test_hs256_token_maps_to_claims(self, test_settings):
        identity = verify_identity_token(_hs_token(test_settings), test_settings)
        assert identity.external_id == "x|12345"
        assert identity.handle == "carol"
        assert identity.display_name == "Carol C."
        assert identity.avatar_url == "https://img.test/carol.png"

    def test_wrong_secret_is_rejected(self, test_settings):
        token = jwt.encode(_claims(), "not-the-secret", algorithm="HS256")
        with pytest.raises(UnauthenticatedError):
            verify_identity_token(token, test_settings)

    def test_expired_token_is_rejected(self, test_settings):
        past = datetime.now(timezone.utc) - timedelta(minutes=10)
        with pytest.raises(UnauthenticatedError, match="expired"):
            verify_identity_token(_hs_token(test_settings, iat=past, exp=past), test_settings)

    def test_missing_username_is_rejected(self, test_settings):
        with pytest.raises(UnauthenticatedError):
            verify_identity_token(_hs_token(test_settings, preferred_username=None), test_settings)

    def test_audience_checked_when_configured(self, test_settings):
        cfg = test_settings.model_copy(update={"IDP_AUDIENCE": "recreate-web"})
        with pytest.raises(UnauthenticatedError):
            verify_identity_token(_hs_token(test_settings, aud="someone-else"), cfg)
        assert verify_identity_token(_hs_token(test_settings, aud="recreate-web"), cfg).handle == "carol"

    def test_rs256_with_injected_jwks(self, test_settings, rsa_material):
        private_pem, jwks = rsa_material
        cfg = test_settings.model_copy(
            update={"IDP_JWKS_URL": "https://idp.test/jwks.json", "IDP_ISSUER": "https://idp.test"}
        )
        set_jwks_provider_for_tests(lambda url: jwks)
        try:
            token = jwt.encode(
                _claims(iss="https://idp.test"), private_pem, algorithm="RS256", headers={"kid": "test-kid"}
            )
            assert verify_identity_token(token, cfg).external_id == "x|12345"

            unknown_kid = jwt.encode(
                _claims(iss="https://idp.test"), private_pem, algorithm="RS256", headers={"kid": "other"}
            )
            with pytest.raises(UnauthenticatedError):
                verify_identity_token(unknown_kid, cfg)
        finally:
            set_jwks_provider_for_tests(None)


class TestSessionToken:
    def test_round_trip(self, test_settings):
        token = issue_session_token("user-1", test_settings)
        assert decode_session_token(token, test_settings) == "user-1"

    def test_foreign_token_is_rejected(self, test_settings):
        # An identity-provider token is not a session token
        with pytest.raises(UnauthenticatedError):
            decode_session_token(_hs_token(test_settings), test_settings)

    def test_expired_session(self, test_settings):
        cfg = test_settings.model_copy(update={"SESSION_TTL_MINUTES": -1})
        token = issue_session_token("user-1", cfg)
        with pytest.raises(UnauthenticatedError, match="expired"):
            decode_session_token(token, test_settings)


class TestLoginRoute:
    def test_first_login_creates_unavailable_user(self, client, test_settings):
        resp = client.post("/auth/login", json={"id_token": _hs_token(test_settings)})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["user"]["handle"] == "carol"
        assert data["user"]["status"] == "unavailable"

        me = client.get("/users/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["user"]["user_id"] == data["user"]["user_id"]

    def test_repeat_login_is_same_user_with_fresh_profile(self, client, test_settings):
        first = client.post("/auth/login", json={"id_token": _hs_token(test_settings)}).json()["data"]
        second = client.post(
            "/auth/login", json={"id_token": _hs_token(test_settings, name="Carol Renamed")}
        ).json()["data"]
        assert first["user"]["user_id"] == second["user"]["user_id"]
        assert second["user"]["display_name"] == "Carol Renamed"

    def test_handle_moves_to_the_latest_login(self, client, test_settings):
        old = client.post("/auth/login", json={"id_token": _hs_token(test_settings)}).json()["data"]
        resp = client.post("/auth/login", json={"id_token": _hs_token(test_settings, sub="x|999", preferred_username="CAROL")})
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["handle"] == "CAROL"

        profile = client.get("/users/carol").json()["data"]
        assert profile["user_id"] == resp.json()["data"]["user"]["user_id"]
        assert profile["user_id"] != old["user"]["user_id"]

    def test_bad_token_is_401(self, client):
        resp = client.post("/auth/login", json={"id_token": "garbage"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_malformed_authorization_header(self, client):
        resp = client.get("/users/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401


class TestResolveOrCreateUser:
    def test_same_subject_is_one_user(self, db):
        first = resolve_or_create_user(db, "ext-1", "alice")
        again = resolve_or_create_user(db, "ext-1", "@alice", display_name="Alice")
        assert again.user_id == first.user_id
        assert again.display_name == "Alice"

    def test_concurrent_first_logins_resolve_to_one_user(self, tmp_path, test_settings):
        url = f"sqlite:///{tmp_path / 'identity.db'}"
        db1 = Database(url, test_settings)
        db2 = Database(url, test_settings)
        db1.create_all()
        real_uuid4 = uuid.uuid4
        winner = {}

        def uuid4_after_competing_login():
            # The other callback commits between this one's lookup and insert
            if "started" not in winner:
                winner["started"] = True
                winner["user"] = resolve_or_create_user(db2, "ext-1", "alice")
            return real_uuid4()

        try:
            with patch("recreate.features.users.service.uuid4", side_effect=uuid4_after_competing_login):
                user = resolve_or_create_user(db1, "ext-1", "alice")
            assert user.user_id == winner["user"].user_id
            assert get_user_by_handle(db1, "alice").user_id == user.user_id
        finally:
            db1.dispose()
            db2.dispose()

    def test_stale_handle_is_released_to_new_account(self, db):
        old = resolve_or_create_user(db, "ext-a", "neo")
        new = resolve_or_create_user(db, "ext-b", "Neo")

        assert new.handle == "Neo"
        assert get_user_by_handle(db, "neo").user_id == new.user_id
        assert get_user(db, old.user_id).handle == f"user-{old.user_id}"

        # The previous holder gets a real handle back on its next login
        refreshed = resolve_or_create_user(db, "ext-a", "neo-renamed")
        assert refreshed.user_id == old.user_id
        assert refreshed.handle == "neo-renamed"
