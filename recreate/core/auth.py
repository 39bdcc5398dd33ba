"""
Authentication.

Two token kinds:
- Identity tokens: signed by the social-login provider, verified once at
  /auth/login (RS256 via JWKS, or HS256 with a shared secret in dev/tests)
- Session tokens: HS256 JWTs issued by us, `sub` = internal user id

Route handlers only ever see the internal user id (get_current_user_id).
"""
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from fastapi import Header, Request
from jwt.algorithms import RSAAlgorithm

from recreate.core.config import settings, Settings
from recreate.core.errors import DependencyError, UnauthenticatedError

logger = logging.getLogger("recreate")

SESSION_ALGORITHM = "HS256"
SESSION_ISSUER = "recreate"
JWKS_CACHE_SECONDS = 86400
JWKS_FETCH_TIMEOUT = 5.0

# JWKS override (tests) and cache keyed by url
_jwks_provider_override: Optional[Callable[[str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, Dict[str, Any]] = {}


@dataclass(frozen=True)
class IdentityClaims:
    external_id: str
    handle: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


def set_jwks_provider_for_tests(provider: Optional[Callable[[str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def _default_fetch_jwks(jwks_url: str) -> Dict[str, Any]:
    try:
        response = httpx.get(jwks_url, timeout=JWKS_FETCH_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        logger.warning(f"Failed to fetch identity provider JWKS: {e}")
        raise DependencyError("Identity provider keys are unavailable")


def get_jwks(jwks_url: str) -> Dict[str, Any]:
    """Fetch JWKS using override (tests) or httpx. Cached for 24 hours."""
    cached = _jwks_cache.get(jwks_url)
    if cached and (time.time() - cached["fetched_at"]) < JWKS_CACHE_SECONDS:
        return cached["jwks"]

    if _jwks_provider_override:
        jwks = _jwks_provider_override(jwks_url)
    else:
        jwks = _default_fetch_jwks(jwks_url)

    _jwks_cache[jwks_url] = {"jwks": jwks, "fetched_at": time.time()}
    return jwks


def _rs256_key(token: str, jwks_url: str):
    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.PyJWTError("Token missing 'kid' in header")
    for key in get_jwks(jwks_url).get("keys", []):
        if key.get("kid") == kid:
            return RSAAlgorithm.from_jwk(json.dumps(key))
    raise jwt.PyJWTError(f"Key ID '{kid}' not found in JWKS")


def _claims_to_identity(claims: Dict[str, Any]) -> IdentityClaims:
    external_id = claims.get("sub")
    handle = (
        claims.get("preferred_username")
        or claims.get("username")
        or claims.get("screen_name")
    )
    if not external_id or not handle:
        raise UnauthenticatedError("Identity token is missing subject or username")
    return IdentityClaims(
        external_id=str(external_id),
        handle=str(handle),
        display_name=claims.get("name"),
        avatar_url=claims.get("picture"),
    )


def verify_identity_token(token: str, settings_obj: Optional[Settings] = None) -> IdentityClaims:
    """
    Verify the provider's ID token and map it to IdentityClaims.

    JWKS (RS256) takes precedence when IDP_JWKS_URL is set; otherwise
    IDP_JWT_SECRET (HS256). Issuer/audience are checked when configured.

    Raises:
        UnauthenticatedError: invalid, expired, or unverifiable token
        DependencyError: JWKS endpoint unreachable
    """
    cfg = settings_obj or settings
    if not token:
        raise UnauthenticatedError("Identity token is required")

    options = {"verify_signature": True, "verify_exp": True, "verify_aud": bool(cfg.IDP_AUDIENCE)}
    kwargs: Dict[str, Any] = {"options": options}
    if cfg.IDP_AUDIENCE:
        kwargs["audience"] = cfg.IDP_AUDIENCE
    if cfg.IDP_ISSUER:
        kwargs["issuer"] = cfg.IDP_ISSUER

    try:
        if cfg.IDP_JWKS_URL:
            claims = jwt.decode(token, _rs256_key(token, cfg.IDP_JWKS_URL), algorithms=["RS256"], **kwargs)
        elif cfg.IDP_JWT_SECRET:
            claims = jwt.decode(token, cfg.IDP_JWT_SECRET, algorithms=["HS256"], **kwargs)
        else:
            logger.error("No identity provider key configured (IDP_JWKS_URL or IDP_JWT_SECRET)")
            raise DependencyError("Login is not configured")
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Identity token has expired")
    except jwt.PyJWTError as e:
        logger.warning(f"Identity token rejected: {e}")
        raise UnauthenticatedError("Invalid identity token")

    return _claims_to_identity(claims)


def issue_session_token(user_id: str, settings_obj: Optional[Settings] = None) -> str:
    cfg = settings_obj or settings
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iss": SESSION_ISSUER,
        "iat": now,
        "exp": now + timedelta(minutes=cfg.SESSION_TTL_MINUTES),
    }
    return jwt.encode(payload, cfg.SESSION_JWT_SECRET, algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str, settings_obj: Optional[Settings] = None) -> str:
    """Return the internal user id carried by a session token."""
    cfg = settings_obj or settings
    try:
        claims = jwt.decode(
            token,
            cfg.SESSION_JWT_SECRET,
            algorithms=[SESSION_ALGORITHM],
            issuer=SESSION_ISSUER,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Session has expired")
    except jwt.PyJWTError:
        raise UnauthenticatedError("Invalid session token")
    return str(claims["sub"])


def get_current_user_id(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """
    FastAPI dependency: the caller's internal user id.

    Raises:
        UnauthenticatedError: missing, malformed, invalid or expired Bearer token
    """
    if not authorization:
        raise UnauthenticatedError("Authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedError("Authorization header must be 'Bearer <token>'")
    return decode_session_token(token.strip(), getattr(request.app.state, "settings", None))
