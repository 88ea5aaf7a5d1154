import logging
from typing import Any, Dict, List, Optional

from taxengine.supabase_client import get_supabase

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Thin typed wrapper over one Supabase table.

    Single-row lookups use limit(1) and return None on a miss. Database errors
    propagate to the caller.
    """

    table_name: str = ""

    def __init__(self, supabase=None):
        self.supabase = supabase if supabase is not None else get_supabase()

    def table(self):
        return self.supabase.table(self.table_name)

    @staticmethod
    def _first(result) -> Optional[Dict[str, Any]]:
        return result.data[0] if result.data else None

    def find_one(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        result = self.table().select("*").eq(column, value).limit(1).execute()
        return self._first(result)

    def get_by_uuid(self, uuid: str) -> Optional[Dict[str, Any]]:
        return self.find_one("uuid", uuid)

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        result = self.table().insert(row).execute()
        return self._first(result) or row

    def insert_many(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        result = self.table().insert(rows).execute()
        return result.data or []

    def update_by_uuid(self, uuid: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.table().update(updates).eq("uuid", uuid).execute()
        return self._first(result)
