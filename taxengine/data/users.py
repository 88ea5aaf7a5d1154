from typing import Any, Dict, List, Optional

from taxengine.data.base import BaseRepository
from taxengine.models import UserRole, UserStatus
from taxengine.utils import utc_now_iso


class UserRepository(BaseRepository):
    table_name = "TaxEngineUsers"

    def list(self) -> List[Dict[str, Any]]:
        result = self.table().select("*").order("createdAt", desc=True).execute()
        return result.data or []

    def count(self) -> int:
        result = self.table().select("id", count="exact").execute()
        return result.count or 0

    def count_active_admins(self) -> int:
        result = self.table()\
            .select("id", count="exact")\
            .eq("role", UserRole.ADMINISTRATOR.value)\
            .eq("status", UserStatus.ACTIVE.value)\
            .execute()
        return result.count or 0

    def create(self, uuid: str, email: str, role: UserRole) -> Dict[str, Any]:
        now = utc_now_iso()
        return self.insert({
            "uuid": uuid,
            "email": email,
            "role": role.value,
            "status": UserStatus.ACTIVE.value,
            "createdAt": now,
            "updatedAt": now,
        })

    def update(self, uuid: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {"updatedAt": utc_now_iso(), **updates}
        return self.update_by_uuid(uuid, updates)
