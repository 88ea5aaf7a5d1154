from typing import Any, Dict, List, Optional

from taxengine.data.base import BaseRepository
from taxengine.models import ClaimStage, ClaimStatus, SubmissionStatus
from taxengine.utils import generate_pack_ref, new_uuid, utc_now_iso


class ClaimPackRepository(BaseRepository):
    table_name = "ClaimPacks"

    def list(self, client_company_uuid: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.table().select("*")
        if client_company_uuid:
            query = query.eq("clientCompanyUuid", client_company_uuid)
        result = query.order("createdAt", desc=True).execute()
        return result.data or []

    def create(
        self,
        title: str,
        company: Dict[str, Any],
        period: Optional[Dict[str, Any]] = None,
        period_label: Optional[str] = None,
        workflow_step: str = "scan-ct600",
        next_action: Optional[str] = None,
        created_by_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        now = utc_now_iso()
        period = period or {}
        return self.insert({
            "uuid": new_uuid(),
            "title": title,
            "periodLabel": period_label,
            "status": ClaimStatus.IN_PROGRESS.value,
            "currentStage": ClaimStage.UPLOAD.value,
            "workflowStep": workflow_step,
            "nextAction": next_action,
            "progress": 0,
            "clientCompanyId": company.get("id"),
            "clientCompanyUuid": company.get("uuid"),
            "accountingPeriodId": period.get("id"),
            "accountingPeriodUuid": period.get("uuid"),
            "createdById": created_by_id,
            "createdAt": now,
            "updatedAt": now,
        })

    def update(self, uuid: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {"updatedAt": utc_now_iso(), **updates}
        return self.update_by_uuid(uuid, updates)


class SubmissionRepository(BaseRepository):
    table_name = "Submissions"

    def list(self, client_company_uuid: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.table().select("*")
        if client_company_uuid:
            query = query.eq("clientCompanyUuid", client_company_uuid)
        result = query.order("createdAt", desc=True).execute()
        return result.data or []

    def find_draft_for_claim(self, claim_pack_uuid: str) -> Optional[Dict[str, Any]]:
        result = self.table()\
            .select("*")\
            .eq("claimPackUuid", claim_pack_uuid)\
            .eq("status", SubmissionStatus.DRAFT.value)\
            .limit(1)\
            .execute()
        return self._first(result)

    def create(self, title: str, claim: Dict[str, Any], submitted_by_id: Optional[int] = None) -> Dict[str, Any]:
        """New DRAFT submission for a claim pack, with a fresh pack reference."""
        now = utc_now_iso()
        return self.insert({
            "uuid": new_uuid(),
            "title": title,
            "packRef": generate_pack_ref(),
            "status": SubmissionStatus.DRAFT.value,
            "clientCompanyId": claim.get("clientCompanyId"),
            "clientCompanyUuid": claim.get("clientCompanyUuid"),
            "claimPackId": claim.get("id"),
            "claimPackUuid": claim.get("uuid"),
            "submittedById": submitted_by_id,
            "createdAt": now,
            "updatedAt": now,
        })

    def update(self, uuid: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {"updatedAt": utc_now_iso(), **updates}
        return self.update_by_uuid(uuid, updates)
