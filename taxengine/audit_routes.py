import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from taxengine.auth_permissions import AuthContext, Permission, get_auth_context
from taxengine.data import AuditLogRepository
from taxengine.data.audit import DEFAULT_AUDIT_LIMIT
from taxengine.models import AuditCategory
from taxengine.router_utils import internal_error, require_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])

MAX_AUDIT_LIMIT = 500


@router.get("")
async def list_audit_logs(
    limit: int = Query(DEFAULT_AUDIT_LIMIT, ge=1, le=MAX_AUDIT_LIMIT),
    category: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context)
):
    """Newest audit entries first, optionally filtered by category."""
    auth.require_permission(Permission.VIEW_AUDIT)
    supabase = require_supabase()

    audit_category = None
    if category:
        try:
            audit_category = AuditCategory(category)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid audit category: {category}")

    try:
        logs = AuditLogRepository(supabase).list(limit=limit, category=audit_category)
    except Exception as e:
        internal_error("fetching audit logs", e)
    return {"logs": logs}
