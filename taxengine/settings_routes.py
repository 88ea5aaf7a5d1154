"""
Workspace Settings Routes

Users and roles, the resolved permission matrix, templates and the
Government Gateway record.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from taxengine.auth_permissions import (
    AuthContext, Permission, ROLE_COLUMNS, get_auth_context,
    get_permission_matrix, request_metadata,
)
from taxengine.data import AuditLogRepository, GatewayRepository, PermissionRepository, TemplateRepository, UserRepository
from taxengine.models import AuditCategory, GatewayStatus, UserRole, UserStatus
from taxengine.router_utils import internal_error, require_supabase
from taxengine.schemas import GatewayUpdate, TemplateCreate, TemplateUpdate, UserUpdate, to_columns
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


# =============================================================================
# USERS
# =============================================================================

@router.get("/users")
async def list_users(auth: AuthContext = Depends(get_auth_context)):
    auth.require_permission(Permission.MANAGE_USERS)
    supabase = require_supabase()
    try:
        users = UserRepository(supabase).list()
    except Exception as e:
        internal_error("fetching users", e)
    return {"users": users}


def _removes_admin(user: Dict[str, Any], updates: Dict[str, Any]) -> bool:
    """True when the update takes an active administrator out of that role."""
    is_active_admin = (
        user.get("role") == UserRole.ADMINISTRATOR.value
        and user.get("status") == UserStatus.ACTIVE.value
    )
    if not is_active_admin:
        return False
    return (
        updates.get("role", UserRole.ADMINISTRATOR.value) != UserRole.ADMINISTRATOR.value
        or updates.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value
    )


@router.patch("/users/{user_uuid}")
async def update_user(
    user_uuid: str,
    body: UserUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """Change a user's role, status or name. The last active administrator stays."""
    auth.require_permission(Permission.MANAGE_USERS)
    supabase = require_supabase()
    users = UserRepository(supabase)
    updates = to_columns(body)

    try:
        user = users.get_by_uuid(user_uuid)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        if _removes_admin(user, updates) and users.count_active_admins() <= 1:
            raise HTTPException(status_code=409, detail="Cannot remove the last active administrator")

        updated = users.update(user_uuid, updates) or {**user, **updates}

        AuditLogRepository(supabase).record(
            action="User updated",
            category=AuditCategory.USER,
            details=f"{user.get('email')}: {', '.join(sorted(updates)) or 'no field changes'}",
            user_id=auth.profile_id,
            **request_metadata(request),
        )
        return {"success": True, "user": updated}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"updating user {user_uuid}", e)


# =============================================================================
# PERMISSIONS
# =============================================================================

@router.get("/permissions")
async def list_permissions(auth: AuthContext = Depends(get_auth_context)):
    """The permission matrix as currently enforced, one row per permission code."""
    auth.require_permission(Permission.VIEW_SETTINGS)
    supabase = require_supabase()

    try:
        rows = {row.get("code"): row for row in PermissionRepository(supabase).list()}
        matrix = get_permission_matrix(supabase, force_refresh=True)
    except Exception as e:
        internal_error("fetching permissions", e)

    permissions = []
    for perm in Permission:
        row = rows.get(perm.value, {})
        entry = {
            "code": perm.value,
            "name": row.get("name") or perm.name.replace("_", " ").title(),
            "description": row.get("description"),
        }
        for role, column in ROLE_COLUMNS.items():
            entry[column] = matrix[role].get(perm, False)
        permissions.append(entry)

    return {"permissions": permissions}


# =============================================================================
# TEMPLATES
# =============================================================================

@router.get("/templates")
async def list_templates(auth: AuthContext = Depends(get_auth_context)):
    auth.require_permission(Permission.VIEW_SETTINGS)
    supabase = require_supabase()
    try:
        templates = TemplateRepository(supabase).list_active()
    except Exception as e:
        internal_error("fetching templates", e)
    return {"templates": templates}


@router.post("/templates")
async def create_template(
    body: TemplateCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.MANAGE_TEMPLATES)
    supabase = require_supabase()

    try:
        template = TemplateRepository(supabase).create(
            body.model_dump(by_alias=True, mode="json"),
            modified_by_id=auth.profile_id,
        )
        AuditLogRepository(supabase).record(
            action="Template created",
            category=AuditCategory.SETTINGS,
            details=f"{body.name} ({body.category.value} v{body.version})",
            user_id=auth.profile_id,
            **request_metadata(request),
        )
        return {"success": True, "template": template}
    except Exception as e:
        internal_error("creating template", e)


@router.patch("/templates/{template_uuid}")
async def update_template(
    template_uuid: str,
    body: TemplateUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.MANAGE_TEMPLATES)
    supabase = require_supabase()
    templates = TemplateRepository(supabase)
    updates = to_columns(body)

    try:
        template = templates.get_by_uuid(template_uuid)
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")

        updates["lastModifiedById"] = auth.profile_id
        updated = templates.update(template_uuid, updates) or {**template, **updates}

        AuditLogRepository(supabase).record(
            action="Template updated",
            category=AuditCategory.SETTINGS,
            details=f"{template.get('name')}: {', '.join(sorted(k for k in updates if k != 'lastModifiedById'))}",
            user_id=auth.profile_id,
            **request_metadata(request),
        )
        return {"success": True, "template": updated}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"updating template {template_uuid}", e)


# =============================================================================
# GOVERNMENT GATEWAY
# =============================================================================

@router.get("/gateway")
async def get_gateway(auth: AuthContext = Depends(get_auth_context)):
    auth.require_permission(Permission.VIEW_SETTINGS)
    supabase = require_supabase()
    try:
        gateway = GatewayRepository(supabase).get_default()
    except Exception as e:
        internal_error("fetching gateway", e)
    if not gateway:
        raise HTTPException(status_code=404, detail="Government Gateway not configured")
    return {"gateway": gateway}


@router.patch("/gateway")
async def update_gateway(
    body: GatewayUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Update the default gateway record. Credentials are never stored here;
    connecting stamps connectedAt and lastVerifiedAt, disconnecting stamps
    disconnectedAt.
    """
    auth.require_permission(Permission.MANAGE_GATEWAY)
    supabase = require_supabase()
    gateways = GatewayRepository(supabase)
    updates = to_columns(body)

    now = utc_now_iso()
    status = updates.get("status")
    if status == GatewayStatus.CONNECTED.value:
        updates["connectedAt"] = now
        updates["lastVerifiedAt"] = now
    elif status == GatewayStatus.DISCONNECTED.value:
        updates["disconnectedAt"] = now

    try:
        gateway = gateways.get_default()
        if not gateway:
            raise HTTPException(status_code=404, detail="Government Gateway not configured")

        updated = gateways.update(gateway["id"], updates) or {**gateway, **updates}

        AuditLogRepository(supabase).record(
            action=f"Gateway {status}" if status else "Gateway updated",
            category=AuditCategory.SETTINGS,
            details=f"{gateway.get('name')}: {', '.join(sorted(updates))}",
            user_id=auth.profile_id,
            **request_metadata(request),
        )
        return {"success": True, "gateway": updated}
    except HTTPException:
        raise
    except Exception as e:
        internal_error("updating gateway", e)
