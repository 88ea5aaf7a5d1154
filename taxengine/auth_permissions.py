"""
Authorization & Permissions Module

Role-based authorization for the TaxEngine API. Every role maps to an
explicit permission matrix that is checked at the route boundary, on top of
the row-level security the database already applies.
"""

import uuid
import logging
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timedelta
from enum import Enum

from fastapi import HTTPException, Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from taxengine.models import UserRole, UserStatus
from taxengine.utils import utc_now
from taxengine.supabase_client import get_supabase, verify_supabase_token, get_user_profile
from taxengine.router_utils import internal_error, require_supabase

logger = logging.getLogger(__name__)

# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

class Permission(str, Enum):
    """All permission codes in the system"""
    VIEW_CLAIMS = "claims.view"
    EDIT_CLAIMS = "claims.edit"
    SUBMIT_CLAIMS = "claims.submit"
    VIEW_CLIENTS = "clients.view"
    EDIT_CLIENTS = "clients.edit"
    MANAGE_USERS = "users.manage"
    VIEW_SETTINGS = "settings.view"
    EDIT_SETTINGS = "settings.edit"
    VIEW_AUDIT = "audit.view"
    MANAGE_TEMPLATES = "templates.manage"
    MANAGE_GATEWAY = "gateway.manage"


_PROCESSOR_PERMISSIONS = {
    Permission.VIEW_CLAIMS,
    Permission.EDIT_CLAIMS,
    Permission.VIEW_CLIENTS,
    Permission.EDIT_CLIENTS,
}

# Default matrix (fallback when the Permissions table is empty or unavailable)
DEFAULT_ROLE_PERMISSIONS: Dict[UserRole, Dict[Permission, bool]] = {
    UserRole.ADMINISTRATOR: {perm: True for perm in Permission},
    UserRole.CLAIM_PROCESSOR: {perm: perm in _PROCESSOR_PERMISSIONS for perm in Permission},
}

# Permissions table column per role
ROLE_COLUMNS = {
    UserRole.ADMINISTRATOR: "administrator",
    UserRole.CLAIM_PROCESSOR: "claimProcessor",
}

MATRIX_CACHE_TTL_SECONDS = 300
_matrix_cache: Optional[Tuple[datetime, Dict[UserRole, Dict[Permission, bool]]]] = None


def get_permission_matrix(supabase=None, force_refresh: bool = False) -> Dict[UserRole, Dict[Permission, bool]]:
    """
    Resolve the role permission matrix.
    Rows in the Permissions table override the defaults; unknown codes are ignored.
    """
    global _matrix_cache

    now = utc_now()
    if not force_refresh and _matrix_cache:
        cached_at, matrix = _matrix_cache
        if now - cached_at < timedelta(seconds=MATRIX_CACHE_TTL_SECONDS):
            return matrix

    matrix = {role: dict(perms) for role, perms in DEFAULT_ROLE_PERMISSIONS.items()}

    supabase = supabase if supabase is not None else get_supabase()
    if supabase:
        try:
            rows = supabase.table("Permissions").select("*").execute().data or []
            for row in rows:
                try:
                    perm = Permission(row.get("code"))
                except ValueError:
                    continue
                for role, column in ROLE_COLUMNS.items():
                    if column in row and row[column] is not None:
                        matrix[role][perm] = bool(row[column])
        except Exception as e:
            logger.warning(f"Failed to load permission matrix, using defaults: {e}")

    _matrix_cache = (now, matrix)
    return matrix


def clear_permission_cache():
    global _matrix_cache
    _matrix_cache = None


# =============================================================================
# AUTHORIZATION CONTEXT
# =============================================================================

class AuthContext:
    """
    Authorization context for a request.
    Carries the auth identity, the linked TaxEngine profile and its role.
    """
    def __init__(
        self,
        user_id: str,
        email: str,
        profile_id: Optional[int] = None,
        role: Optional[UserRole] = None,
        permissions: Optional[Dict[Permission, bool]] = None,
        request_id: Optional[str] = None
    ):
        self.user_id = user_id
        self.email = email
        self.profile_id = profile_id
        self.role = role
        self.permissions = permissions or {}
        self.request_id = request_id or str(uuid.uuid4())[:8]

    def has_permission(self, perm: Permission) -> bool:
        return self.permissions.get(perm, False)

    def require_permission(self, perm: Permission, message: str = None):
        """Raise HTTPException if permission is missing"""
        if not self.has_permission(perm):
            raise HTTPException(
                status_code=403,
                detail=message or f"Permission denied: {perm.value} required"
            )


# =============================================================================
# AUTHENTICATION HELPERS
# =============================================================================

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """
    Verify the bearer token only. Used where the TaxEngine profile may not
    exist yet (profile creation, login tracking).
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = verify_supabase_token(credentials.credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


async def get_auth_context(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user)
) -> AuthContext:
    """
    Primary auth dependency for protected endpoints.
    Resolves the profile, its role and the role's permissions.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

    supabase = require_supabase()
    try:
        profile = get_user_profile(supabase, user["id"])
    except Exception as e:
        internal_error("loading user profile", e)

    if not profile:
        raise HTTPException(status_code=403, detail="No TaxEngine profile for this account")

    if profile.get("status") != UserStatus.ACTIVE.value:
        raise HTTPException(status_code=403, detail="Account is not active")

    try:
        role = UserRole(profile.get("role"))
    except ValueError:
        logger.warning(f"Unknown role '{profile.get('role')}' for user {user['id']}")
        raise HTTPException(status_code=403, detail="Account has no valid role")

    matrix = get_permission_matrix(supabase)

    return AuthContext(
        user_id=user["id"],
        email=user.get("email") or profile.get("email", ""),
        profile_id=profile.get("id"),
        role=role,
        permissions=matrix.get(role, {}),
        request_id=request_id
    )


def request_metadata(request: Request) -> Dict[str, Optional[str]]:
    """Client IP and user agent for audit rows."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
    }
