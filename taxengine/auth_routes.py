"""
Auth Profile Routes

Called by the frontend straight after Supabase sign-up / sign-in. These
endpoints only need a valid token, since the TaxEngine profile may not exist
yet; the token subject must match the userId in the body.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from taxengine.auth_permissions import get_current_user, request_metadata
from taxengine.data import AuditLogRepository, UserRepository
from taxengine.models import AuditCategory, UserRole
from taxengine.router_utils import internal_error, require_supabase
from taxengine.schemas import CreateProfileRequest, TrackLoginRequest
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _require_same_user(user: Dict[str, Any], user_id: str):
    if user.get("id") != user_id:
        logger.warning(f"[Auth] Token subject {user.get('id')} does not match userId {user_id}")
        raise HTTPException(status_code=403, detail="Token does not match userId")


@router.post("/create-profile")
async def create_profile(
    body: CreateProfileRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user)
):
    """
    Create the TaxEngine profile for a newly signed-up identity.
    The first profile in the workspace becomes its administrator.
    """
    if not body.user_id or not body.user_email:
        raise HTTPException(status_code=400, detail="Missing userId or userEmail")
    _require_same_user(user, body.user_id)

    supabase = require_supabase()
    users = UserRepository(supabase)

    try:
        existing = users.get_by_uuid(body.user_id)
        if existing:
            return {"profile": existing, "created": False}

        role = UserRole.ADMINISTRATOR if users.count() == 0 else UserRole.CLAIM_PROCESSOR
        profile = users.create(body.user_id, body.user_email, role)
        logger.info(f"Created {role.value} profile for {body.user_email}")
    except Exception as e:
        internal_error("creating profile", e)

    AuditLogRepository(supabase).record(
        action="User account created",
        category=AuditCategory.USER,
        details=json.dumps({"email": body.user_email, "role": role.value}),
        user_id=profile.get("id"),
        **request_metadata(request),
    )

    return {"profile": profile, "created": True}


@router.post("/track-login")
async def track_login(
    body: TrackLoginRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user)
):
    """Stamp lastLoginAt and audit the login. Bookkeeping failures are only logged."""
    if not body.user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    _require_same_user(user, body.user_id)

    supabase = require_supabase()
    users = UserRepository(supabase)
    logger.info(f"Tracking login for user: {body.user_email or body.user_id}")

    profile = None
    try:
        profile = users.get_by_uuid(body.user_id)
    except Exception as e:
        logger.error(f"Error fetching user profile: {e}")

    try:
        users.update(body.user_id, {"lastLoginAt": utc_now_iso()})
    except Exception as e:
        logger.error(f"Error updating last login: {e}")

    AuditLogRepository(supabase).record(
        action="User logged in",
        category=AuditCategory.AUTH,
        details=f"User {body.user_email or (profile or {}).get('email') or body.user_id} logged in",
        user_id=(profile or {}).get("id"),
        **request_metadata(request),
    )

    return {"success": True}
