from typing import Any, Dict, List, Optional

from taxengine.data.base import BaseRepository
from taxengine.utils import new_uuid, utc_now_iso


class TemplateRepository(BaseRepository):
    table_name = "Templates"

    def list_active(self) -> List[Dict[str, Any]]:
        result = self.table()\
            .select("*")\
            .eq("isActive", True)\
            .order("name")\
            .execute()
        return result.data or []

    def create(self, fields: Dict[str, Any], modified_by_id: Optional[int] = None) -> Dict[str, Any]:
        now = utc_now_iso()
        return self.insert({
            "uuid": new_uuid(),
            "isActive": True,
            "isDefault": False,
            **fields,
            "lastModifiedById": modified_by_id,
            "createdAt": now,
            "updatedAt": now,
        })

    def update(self, uuid: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {"updatedAt": utc_now_iso(), **updates}
        return self.update_by_uuid(uuid, updates)


class GatewayRepository(BaseRepository):
    table_name = "GovernmentGateway"

    def get_default(self) -> Optional[Dict[str, Any]]:
        return self.find_one("isDefault", True)

    def update(self, gateway_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {"updatedAt": utc_now_iso(), **updates}
        result = self.table().update(updates).eq("id", gateway_id).execute()
        return self._first(result)


class PermissionRepository(BaseRepository):
    table_name = "Permissions"

    def list(self) -> List[Dict[str, Any]]:
        result = self.table().select("*").order("code").execute()
        return result.data or []
