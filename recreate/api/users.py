"""
recreate/api/users.py
FastAPI routes for profiles and price plans.

/users/me* routes are declared before /users/{handle} so "me" is never
treated as a handle.
"""

from fastapi import APIRouter, Depends

from recreate.api.deps import get_db
from recreate.core.auth import get_current_user_id
from recreate.core.database import Database
from recreate.core.errors import NotFoundError
from recreate.features.plans.service import create_plan, delete_plan, list_plans, update_plan
from recreate.features.users.service import (
    get_own_profile,
    get_public_profile,
    get_user_by_handle,
    get_work_stats,
    update_profile,
)
from recreate.models.price_plan import PricePlanRequest
from recreate.models.user import ProfileUpdateRequest

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
def read_own_profile(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    """Own profile including hidden plans."""
    profile = get_own_profile(db, user_id)
    return {"success": True, "data": profile.model_dump(mode="json")}


@router.put("/me")
def edit_own_profile(
    request: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    """
    Update description and/or status.

    Request body:
        description?: string
        status?: "available" | "available_hidden" | "unavailable"
    """
    user = update_profile(db, user_id, request)
    return {"success": True, "data": user.model_dump(mode="json")}


@router.get("/me/plans")
def read_own_plans(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    plans = list_plans(db, user_id, include_hidden=True)
    return {"success": True, "data": [p.model_dump(mode="json") for p in plans], "count": len(plans)}


@router.post("/me/plans", status_code=201)
def add_plan(
    request: PricePlanRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    result = create_plan(db, user_id, request)
    return {"success": True, "data": result.plan.model_dump(mode="json"), "warnings": result.warnings}


@router.put("/me/plans/{plan_id}")
def edit_plan(
    plan_id: str,
    request: PricePlanRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_db),
):
    result = update_plan(db, user_id, plan_id, request)
    return {"success": True, "data": result.plan.model_dump(mode="json"), "warnings": result.warnings}


@router.delete("/me/plans/{plan_id}")
def remove_plan(plan_id: str, user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    """Hard delete. May downgrade status (see warnings)."""
    result = delete_plan(db, user_id, plan_id)
    return {"success": True, "data": {"plan_id": plan_id, "deleted": True}, "warnings": result.warnings}


@router.get("/{handle}")
def read_public_profile(handle: str, db: Database = Depends(get_db)):
    """Public profile by handle (case-insensitive); hidden plans omitted."""
    profile = get_public_profile(db, handle)
    return {"success": True, "data": profile.model_dump(mode="json")}


@router.get("/{handle}/stats")
def read_work_stats(handle: str, db: Database = Depends(get_db)):
    user = get_user_by_handle(db, handle)
    if not user:
        raise NotFoundError("User not found")
    stats = get_work_stats(db, user.user_id)
    return {"success": True, "data": stats.model_dump(mode="json")}
