from typing import Any, Dict, List

from taxengine.data.base import BaseRepository
from taxengine.utils import utc_now_iso


class AccountingPeriodRepository(BaseRepository):
    table_name = "AccountingPeriods"

    def list_for_company(self, client_company_uuid: str) -> List[Dict[str, Any]]:
        result = self.table()\
            .select("*")\
            .eq("clientCompanyUuid", client_company_uuid)\
            .order("endDate", desc=True)\
            .execute()
        return result.data or []

    def update_status(self, uuid: str, status: str) -> Dict[str, Any]:
        return self.update_by_uuid(uuid, {"status": status, "updatedAt": utc_now_iso()})
