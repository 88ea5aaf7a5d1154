from typing import Any, Dict, List, Optional

from taxengine.data.base import BaseRepository
from taxengine.utils import blank_to_none, new_uuid, utc_now_iso


class ClientCompanyRepository(BaseRepository):
    table_name = "ClientCompanies"

    def list_active(self) -> List[Dict[str, Any]]:
        result = self.table()\
            .select("*")\
            .eq("isActive", True)\
            .order("companyName")\
            .execute()
        return result.data or []

    def find_by_company_number(self, company_number: str) -> Optional[Dict[str, Any]]:
        result = self.table()\
            .select("id, uuid, companyName, companyNumber")\
            .eq("companyNumber", company_number)\
            .limit(1)\
            .execute()
        return self._first(result)

    def create(
        self,
        company_name: str,
        company_number: str,
        utr: Optional[str] = None,
        paye_reference: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        contact_name: Optional[str] = None,
        year_end_month: Optional[int] = None,
        year_end_day: Optional[int] = None,
    ) -> Dict[str, Any]:
        now = utc_now_iso()
        return self.insert({
            "uuid": new_uuid(),
            "companyName": company_name,
            "companyNumber": company_number,
            "utr": blank_to_none(utr),
            "payeReference": blank_to_none(paye_reference),
            "email": blank_to_none(email),
            "phone": blank_to_none(phone),
            # No dedicated contact column; the key contact lives in bio
            "bio": f"Key Contact: {contact_name}" if contact_name else None,
            "isActive": True,
            "sicCodes": [],
            "companyYearEndMonth": year_end_month or None,
            "companyYearEndDay": year_end_day or None,
            "createdAt": now,
            "updatedAt": now,
        })
