"""
recreate/api/auth.py
Login callback: exchange an identity-provider ID token for a session token.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from recreate.api.deps import get_db, get_settings
from recreate.core.auth import issue_session_token, verify_identity_token
from recreate.core.config import Settings
from recreate.core.database import Database
from recreate.features.users.service import resolve_or_create_user

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    id_token: str


@router.post("/login")
def login(request: LoginRequest, db: Database = Depends(get_db), cfg: Settings = Depends(get_settings)):
    """
    Verify the provider token, create or refresh the user, issue a session.

    Returns:
        access_token, token_type ("bearer"), user
    """
    identity = verify_identity_token(request.id_token, cfg)
    user = resolve_or_create_user(
        db,
        external_id=identity.external_id,
        handle=identity.handle,
        display_name=identity.display_name,
        avatar_url=identity.avatar_url,
    )
    return {
        "success": True,
        "data": {
            "access_token": issue_session_token(user.user_id, cfg),
            "token_type": "bearer",
            "user": user.model_dump(mode="json"),
        },
    }
