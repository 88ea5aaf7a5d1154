import logging
from typing import Any, Dict, List, Optional

from taxengine.data.base import BaseRepository
from taxengine.models import AuditCategory
from taxengine.utils import new_uuid, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 50


class AuditLogRepository(BaseRepository):
    """Append-only audit trail. Rows are never updated or deleted."""

    table_name = "AuditLog"

    def list(self, limit: int = DEFAULT_AUDIT_LIMIT, category: Optional[AuditCategory] = None) -> List[Dict[str, Any]]:
        query = self.table().select("*")
        if category:
            query = query.eq("category", AuditCategory(category).value)
        result = query.order("timestamp", desc=True).limit(limit).execute()
        return result.data or []

    def record(
        self,
        action: str,
        category: AuditCategory,
        details: Optional[str] = None,
        user_id: Optional[int] = None,
        client_company_id: Optional[int] = None,
        claim_pack_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Best-effort audit write. A failure is logged and swallowed so the
        primary operation it describes still succeeds.
        """
        row = {
            "uuid": new_uuid(),
            "action": action,
            "details": details,
            "category": AuditCategory(category).value,
            "userId": user_id,
            "clientCompanyId": client_company_id,
            "claimPackId": claim_pack_id,
            "ipAddress": ip_address,
            "userAgent": user_agent,
            "timestamp": utc_now_iso(),
        }
        try:
            return self.insert(row)
        except Exception as e:
            logger.warning(f"Failed to log audit event '{action}': {e}")
            return None
