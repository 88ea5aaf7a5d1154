"""
Claim Pack & Submission Routes

Claim packs move through the workflow steps server-side:

    scan-ct600 -> extracting -> review-info -> adjustments
        -> final-review -> docusign -> submission

The two slow steps run as background jobs: POST /extract queues CT600
extraction, POST /submit creates a DRAFT submission and queues HMRC
validation. Clients poll /api/jobs/{id} for the outcome.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from taxengine.accounting_periods import move_period_forward
from taxengine.auth_permissions import AuthContext, Permission, get_auth_context, request_metadata
from taxengine.data import (
    AccountingPeriodRepository, AuditLogRepository, ClaimPackRepository,
    ClientCompanyRepository, SubmissionRepository,
)
from taxengine.jobs import JobManager, JobProgress, JobStartResponse, JobStatus, JobType, execute_job_task
from taxengine.models import AuditCategory, ClaimStage, ClaimStatus, PeriodStatus, stage_index
from taxengine.router_utils import internal_error, require_supabase
from taxengine.schemas import (
    ClaimCreate, ClaimStageUpdate, ExtractionRequest, SubmitClaimRequest, WorkflowAdvanceRequest,
)
from taxengine.utils import utc_now_iso
from taxengine.workflow_engine import (
    WORKFLOW_CONFIG, WorkflowError, WorkflowStep, current_step, plan_transition, stage_updates,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/claims", tags=["claims"])
submissions_router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def _load_claim(claims: ClaimPackRepository, claim_uuid: str) -> Dict[str, Any]:
    claim = claims.get_by_uuid(claim_uuid)
    if not claim:
        raise HTTPException(status_code=404, detail="Claim not found")
    return claim


def _job_handle(job: Dict[str, Any], is_existing: bool) -> Dict[str, Any]:
    return JobStartResponse(
        job_id=job["id"],
        status=JobStatus(job["status"]),
        progress=JobProgress(**(job.get("progress") or {})),
        existing_job=is_existing,
    ).model_dump(mode="json")


def _period_label(period: Optional[Dict[str, Any]]) -> Optional[str]:
    if not period:
        return None
    return f"{period.get('startDate')} to {period.get('endDate')}"


# =============================================================================
# CLAIM PACKS
# =============================================================================

@router.get("")
async def list_claims(
    client_company_uuid: Optional[str] = Query(None, alias="clientCompanyUuid"),
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLAIMS)
    supabase = require_supabase()
    try:
        claims = ClaimPackRepository(supabase).list(client_company_uuid)
    except Exception as e:
        internal_error("fetching claims", e)
    return {"claims": claims}


@router.get("/{claim_uuid}")
async def get_claim(
    claim_uuid: str,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLAIMS)
    supabase = require_supabase()
    try:
        claim = _load_claim(ClaimPackRepository(supabase), claim_uuid)
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"fetching claim {claim_uuid}", e)
    return {"claim": claim}


@router.post("")
async def create_claim(
    body: ClaimCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """Open a claim pack for a company (and optionally one of its periods)."""
    auth.require_permission(Permission.EDIT_CLAIMS)
    supabase = require_supabase()

    title = (body.title or "").strip()
    if not title or not body.client_company_uuid:
        raise HTTPException(status_code=400, detail="Title and client company UUID are required")

    try:
        company = ClientCompanyRepository(supabase).get_by_uuid(body.client_company_uuid)
        if not company:
            raise HTTPException(status_code=404, detail="Client company not found")

        periods = AccountingPeriodRepository(supabase)
        period = None
        if body.accounting_period_uuid:
            period = periods.get_by_uuid(body.accounting_period_uuid)
            if not period or period.get("clientCompanyUuid") != company.get("uuid"):
                raise HTTPException(status_code=404, detail="Accounting period not found")

        claim = ClaimPackRepository(supabase).create(
            title=title,
            company=company,
            period=period,
            period_label=body.period_label or _period_label(period),
            workflow_step=WorkflowStep.SCAN_CT600.value,
            next_action=WORKFLOW_CONFIG[WorkflowStep.SCAN_CT600].next_action,
            created_by_id=auth.profile_id,
        )

        if period:
            move_period_forward(periods, period["uuid"], PeriodStatus.IN_PROGRESS)

        AuditLogRepository(supabase).record(
            action="Claim created",
            category=AuditCategory.CLAIM,
            details=f"{title} for {company.get('companyName')}",
            user_id=auth.profile_id,
            client_company_id=company.get("id"),
            claim_pack_id=claim.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "claim": claim}
    except HTTPException:
        raise
    except Exception as e:
        internal_error("creating claim", e)


@router.patch("/{claim_uuid}/stage")
async def update_claim_stage(
    claim_uuid: str,
    body: ClaimStageUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Set stage and progress directly. The stage never moves backwards; moving
    it forward stamps the completion time of each stage left behind.
    """
    auth.require_permission(Permission.EDIT_CLAIMS)
    supabase = require_supabase()
    claims = ClaimPackRepository(supabase)

    try:
        claim = _load_claim(claims, claim_uuid)
        current = ClaimStage(claim.get("currentStage") or ClaimStage.UPLOAD.value)
        if stage_index(body.stage) < stage_index(current):
            raise HTTPException(
                status_code=409,
                detail=f"Cannot move claim from {current.value} back to {body.stage.value}"
            )

        updates: Dict[str, Any] = {"progress": body.progress}
        updates.update(stage_updates(current.value, body.stage, utc_now_iso()))
        if body.stage == ClaimStage.SUBMIT:
            updates["status"] = ClaimStatus.COMPLETED.value

        updated = claims.update(claim_uuid, updates) or {**claim, **updates}

        AuditLogRepository(supabase).record(
            action="Claim stage advanced",
            category=AuditCategory.CLAIM,
            details=f"{claim.get('title')}: {current.value} -> {body.stage.value} ({body.progress}%)",
            user_id=auth.profile_id,
            client_company_id=claim.get("clientCompanyId"),
            claim_pack_id=claim.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "claim": updated}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"updating stage for claim {claim_uuid}", e)


@router.post("/{claim_uuid}/advance")
async def advance_claim(
    claim_uuid: str,
    body: WorkflowAdvanceRequest,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """Move the claim to another workflow step along an allowed edge."""
    auth.require_permission(Permission.EDIT_CLAIMS)
    supabase = require_supabase()
    claims = ClaimPackRepository(supabase)

    try:
        claim = _load_claim(claims, claim_uuid)
        previous = current_step(claim)
        try:
            updates, period_status = plan_transition(claim, body.step, utc_now_iso())
        except WorkflowError as e:
            raise HTTPException(status_code=409, detail=str(e))

        updated = claims.update(claim_uuid, updates) or {**claim, **updates}

        period = None
        if period_status:
            period = move_period_forward(
                AccountingPeriodRepository(supabase), claim.get("accountingPeriodUuid"), period_status
            )

        AuditLogRepository(supabase).record(
            action="Claim workflow advanced",
            category=AuditCategory.CLAIM,
            details=f"{claim.get('title')}: {previous.value} -> {body.step.value}",
            user_id=auth.profile_id,
            client_company_id=claim.get("clientCompanyId"),
            claim_pack_id=claim.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "claim": updated, "period": period}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"advancing claim {claim_uuid}", e)


@router.post("/{claim_uuid}/extract")
async def start_extraction(
    claim_uuid: str,
    body: ExtractionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context)
):
    """Move the claim to extracting and queue CT600 extraction."""
    auth.require_permission(Permission.EDIT_CLAIMS)
    supabase = require_supabase()

    if not any(doc.type.lower() == "ct600" for doc in body.documents):
        raise HTTPException(status_code=400, detail="At least one CT600 document is required")

    claims = ClaimPackRepository(supabase)
    try:
        claim = _load_claim(claims, claim_uuid)
        try:
            updates, _ = plan_transition(claim, WorkflowStep.EXTRACTING, utc_now_iso(), system=True)
        except WorkflowError as e:
            raise HTTPException(status_code=409, detail=str(e))

        documents = [doc.model_dump() for doc in body.documents]
        job, is_existing = JobManager(supabase).create_job(
            JobType.CT600_EXTRACTION,
            params={"claim_pack_uuid": claim_uuid, "documents": documents, "user_id": auth.profile_id},
            user_id=auth.profile_id,
            client_company_uuid=claim.get("clientCompanyUuid"),
            claim_pack_uuid=claim_uuid,
        )
        updated = claims.update(claim_uuid, updates) or {**claim, **updates}

        if not is_existing:
            background_tasks.add_task(execute_job_task, job["id"])
            logger.info(f"Queued CT600 extraction job {job['id']} for claim {claim_uuid}")

        AuditLogRepository(supabase).record(
            action="CT600 documents uploaded",
            category=AuditCategory.DOCUMENT,
            details=", ".join(doc["name"] for doc in documents),
            user_id=auth.profile_id,
            client_company_id=claim.get("clientCompanyId"),
            claim_pack_id=claim.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "claim": updated, "job": _job_handle(job, is_existing)}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"starting extraction for claim {claim_uuid}", e)


@router.post("/{claim_uuid}/submit")
async def submit_claim(
    claim_uuid: str,
    body: SubmitClaimRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Issue the claim for submission: create a DRAFT submission, move the
    period to ISSUED and queue HMRC validation.
    """
    auth.require_permission(Permission.SUBMIT_CLAIMS)
    supabase = require_supabase()
    claims = ClaimPackRepository(supabase)
    submissions = SubmissionRepository(supabase)

    try:
        claim = _load_claim(claims, claim_uuid)
        if current_step(claim) != WorkflowStep.SUBMISSION:
            raise HTTPException(status_code=409, detail="Claim is not ready for submission")
        if claim.get("status") == ClaimStatus.COMPLETED.value:
            raise HTTPException(status_code=409, detail="Claim has already been submitted")
        if submissions.find_draft_for_claim(claim_uuid):
            raise HTTPException(status_code=409, detail="A submission for this claim is already being validated")

        submission = submissions.create(
            title=(body.title or "").strip() or claim.get("title"),
            claim=claim,
            submitted_by_id=auth.profile_id,
        )
        move_period_forward(
            AccountingPeriodRepository(supabase), claim.get("accountingPeriodUuid"), PeriodStatus.ISSUED
        )

        job, is_existing = JobManager(supabase).create_job(
            JobType.HMRC_VALIDATION,
            params={
                "submission_uuid": submission["uuid"],
                "claim_pack_uuid": claim_uuid,
                "user_id": auth.profile_id,
            },
            user_id=auth.profile_id,
            client_company_uuid=claim.get("clientCompanyUuid"),
            claim_pack_uuid=claim_uuid,
        )
        claims.update(claim_uuid, {"nextAction": "Awaiting HMRC validation"})

        if not is_existing:
            background_tasks.add_task(execute_job_task, job["id"])
            logger.info(f"Queued HMRC validation job {job['id']} for submission {submission['uuid']}")

        AuditLogRepository(supabase).record(
            action="Submission created",
            category=AuditCategory.SUBMISSION,
            details=f"{submission.get('packRef')} for {claim.get('title')}",
            user_id=auth.profile_id,
            client_company_id=claim.get("clientCompanyId"),
            claim_pack_id=claim.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "submission": submission, "job": _job_handle(job, is_existing)}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"submitting claim {claim_uuid}", e)


# =============================================================================
# SUBMISSIONS
# =============================================================================

@submissions_router.get("")
async def list_submissions(
    client_company_uuid: Optional[str] = Query(None, alias="clientCompanyUuid"),
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLAIMS)
    supabase = require_supabase()
    try:
        submissions = SubmissionRepository(supabase).list(client_company_uuid)
    except Exception as e:
        internal_error("fetching submissions", e)
    return {"submissions": submissions}
