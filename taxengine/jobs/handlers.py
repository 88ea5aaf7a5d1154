"""
Job Handlers

Implements handler functions for each job type. Each handler receives a
JobContext and returns a result dictionary.

Neither handler talks to a real extraction service or to HMRC. Extraction
records the uploaded document manifest; validation runs the local
pre-submission checks a CT600 has to pass before transmission.
"""

import logging
import re
import secrets
from typing import Any, Dict, List, Optional

from taxengine.accounting_periods import (
    MAX_PERIOD_DAYS, move_period_forward, parse_period_date, period_length_days,
)
from taxengine.data import (
    AccountingPeriodRepository, AuditLogRepository, ClaimPackRepository,
    ClientCompanyRepository, SubmissionRepository,
)
from taxengine.jobs.job_types import CT600ExtractionParams, HMRCValidationParams, JobType
from taxengine.jobs.runner import JobContext, JobRunner
from taxengine.models import AuditCategory, ClaimStage, ClaimStatus, PeriodStatus, SubmissionStatus
from taxengine.utils import new_uuid, utc_now_iso
from taxengine.workflow_engine import (
    WORKFLOW_CONFIG, WorkflowStep, current_step, plan_transition, stage_updates,
)

logger = logging.getLogger(__name__)

UTR_PATTERN = re.compile(r"^\d{10}$")


# ============================================================================
# CT600 Extraction Handler
# ============================================================================

async def handle_ct600_extraction(ctx: JobContext) -> Dict[str, Any]:
    """
    Record the CT600 document manifest for a claim and move it on to review.

    Stages:
    1. loading_claim - Fetch the claim pack
    2. recording_documents - Assign the extraction dataset id
    3. updating_claim - Move the claim to review-info
    """
    params = CT600ExtractionParams(**ctx.params)
    claims = ClaimPackRepository(ctx.supabase)

    ctx.update_progress(10, "loading_claim")
    claim = claims.get_by_uuid(params.claim_pack_uuid)
    if not claim:
        raise ValueError(f"Claim pack {params.claim_pack_uuid} not found")

    ctx.update_progress(40, "recording_documents", f"{len(params.documents)} documents")
    document_names = [doc.get("name") for doc in params.documents]
    dataset_id = f"alpha-{secrets.token_hex(6)}"
    ctx.log(f"Recorded extraction dataset {dataset_id}", {"documents": document_names})

    ctx.raise_if_cancelled()

    ctx.update_progress(80, "updating_claim")
    # Re-read so a concurrent advance is seen before the transition is planned
    claim = claims.get_by_uuid(params.claim_pack_uuid)
    updates, period_status = plan_transition(claim, WorkflowStep.REVIEW_INFO, utc_now_iso(), system=True)
    claims.update(claim["uuid"], updates)

    if period_status:
        move_period_forward(AccountingPeriodRepository(ctx.supabase), claim.get("accountingPeriodUuid"), period_status)

    AuditLogRepository(ctx.supabase).record(
        action="CT600 extraction completed",
        category=AuditCategory.DOCUMENT,
        details=f"Dataset {dataset_id} from {len(document_names)} documents",
        user_id=ctx.user_id,
        client_company_id=claim.get("clientCompanyId"),
        claim_pack_id=claim.get("id"),
    )

    return {
        "datasetId": dataset_id,
        "documents": document_names,
        "workflowStep": WorkflowStep.REVIEW_INFO.value,
    }


def release_ct600_extraction(supabase, job: Dict[str, Any], reason: str):
    """Hand a claim stuck at extracting back to scan-ct600 so it can be re-uploaded."""
    claim_uuid = (job.get("params") or {}).get("claim_pack_uuid") or job.get("claimPackUuid")
    if not claim_uuid:
        return

    claims = ClaimPackRepository(supabase)
    claim = claims.get_by_uuid(claim_uuid)
    if not claim or current_step(claim) != WorkflowStep.EXTRACTING:
        return

    updates, _ = plan_transition(claim, WorkflowStep.SCAN_CT600, utc_now_iso(), system=True)
    updates["nextAction"] = "Re-upload CT600 documents"
    claims.update(claim_uuid, updates)

    AuditLogRepository(supabase).record(
        action="CT600 extraction failed",
        category=AuditCategory.DOCUMENT,
        details=reason,
        user_id=job.get("createdByUserId"),
        client_company_id=claim.get("clientCompanyId"),
        claim_pack_id=claim.get("id"),
    )
    logger.info(f"Claim {claim_uuid} returned to scan-ct600 after extraction job {job.get('id')} ended")


# ============================================================================
# HMRC Validation Handler
# ============================================================================

def validate_submission_data(
    company: Optional[Dict[str, Any]],
    period: Optional[Dict[str, Any]],
) -> List[str]:
    """Local pre-submission checks. Returns the list of failures."""
    failures: List[str] = []

    if not company:
        failures.append("Client company not found")
    else:
        if not company.get("companyName") or not company.get("companyNumber"):
            failures.append("Company name and company number are required")
        utr = "".join((company.get("utr") or "").split())
        if not UTR_PATTERN.match(utr):
            failures.append("UTR must be 10 digits")

    if not period:
        failures.append("Accounting period not found")
        return failures

    try:
        start = parse_period_date(period.get("startDate"))
        end = parse_period_date(period.get("endDate"))
    except (TypeError, ValueError):
        failures.append("Accounting period dates are invalid")
        return failures

    if end <= start:
        failures.append("Accounting period must end after it starts")
    elif period_length_days(start, end) > MAX_PERIOD_DAYS:
        failures.append("Accounting period cannot exceed 12 months")

    return failures


async def handle_hmrc_validation(ctx: JobContext) -> Dict[str, Any]:
    """
    Validate a DRAFT submission and settle it.

    Passing submissions become SUBMITTED, and their claim and period are
    closed out. Failing ones become REJECTED with the failures recorded in
    hmrcResponse.
    """
    params = HMRCValidationParams(**ctx.params)
    submissions = SubmissionRepository(ctx.supabase)
    claims = ClaimPackRepository(ctx.supabase)
    periods = AccountingPeriodRepository(ctx.supabase)
    audit = AuditLogRepository(ctx.supabase)

    ctx.update_progress(10, "loading_submission")
    submission = submissions.get_by_uuid(params.submission_uuid)
    if not submission:
        raise ValueError(f"Submission {params.submission_uuid} not found")
    claim = claims.get_by_uuid(params.claim_pack_uuid)
    if not claim:
        raise ValueError(f"Claim pack {params.claim_pack_uuid} not found")

    company = ClientCompanyRepository(ctx.supabase).get_by_uuid(claim.get("clientCompanyUuid"))
    period = periods.get_by_uuid(claim["accountingPeriodUuid"]) if claim.get("accountingPeriodUuid") else None

    ctx.update_progress(40, "validating")
    failures = validate_submission_data(company, period)
    for failure in failures:
        ctx.warn(failure)

    ctx.raise_if_cancelled()

    ctx.update_progress(80, "recording_outcome")
    now = utc_now_iso()

    if failures:
        submissions.update(submission["uuid"], {
            "status": SubmissionStatus.REJECTED.value,
            "hmrcResponse": {"valid": False, "errors": failures, "checkedAt": now},
        })
        audit.record(
            action="Submission rejected",
            category=AuditCategory.SUBMISSION,
            details=f"{submission.get('packRef')}: {'; '.join(failures)}",
            user_id=ctx.user_id,
            client_company_id=claim.get("clientCompanyId"),
            claim_pack_id=claim.get("id"),
        )
        return {
            "valid": False,
            "errors": failures,
            "submissionStatus": SubmissionStatus.REJECTED.value,
        }

    correlation_id = new_uuid()
    submissions.update(submission["uuid"], {
        "status": SubmissionStatus.SUBMITTED.value,
        "submittedAt": now,
        "correlationId": correlation_id,
        "hmrcResponse": {"valid": True, "errors": [], "checkedAt": now},
    })

    claim_updates = {
        "status": ClaimStatus.COMPLETED.value,
        "progress": 100,
        "nextAction": "Awaiting HMRC acknowledgement",
    }
    claim_updates.update(stage_updates(claim.get("currentStage"), ClaimStage.SUBMIT, now))
    claims.update(claim["uuid"], claim_updates)

    move_period_forward(periods, claim.get("accountingPeriodUuid"), PeriodStatus.SUBMITTED)

    audit.record(
        action="Submission validated",
        category=AuditCategory.SUBMISSION,
        details=f"{submission.get('packRef')} submitted (correlation {correlation_id})",
        user_id=ctx.user_id,
        client_company_id=claim.get("clientCompanyId"),
        claim_pack_id=claim.get("id"),
    )

    return {
        "valid": True,
        "errors": [],
        "submissionStatus": SubmissionStatus.SUBMITTED.value,
        "correlationId": correlation_id,
    }


def release_hmrc_validation(supabase, job: Dict[str, Any], reason: str):
    """Reject a DRAFT submission whose validation job ended without an outcome."""
    params = job.get("params") or {}
    submission_uuid = params.get("submission_uuid")
    if not submission_uuid:
        return

    submissions = SubmissionRepository(supabase)
    submission = submissions.get_by_uuid(submission_uuid)
    if not submission or submission.get("status") != SubmissionStatus.DRAFT.value:
        return

    submissions.update(submission_uuid, {
        "status": SubmissionStatus.REJECTED.value,
        "hmrcResponse": {"valid": False, "errors": [reason], "checkedAt": utc_now_iso()},
    })

    claims = ClaimPackRepository(supabase)
    claim_uuid = params.get("claim_pack_uuid") or job.get("claimPackUuid")
    claim = claims.get_by_uuid(claim_uuid) if claim_uuid else None
    if claim:
        claims.update(claim_uuid, {"nextAction": WORKFLOW_CONFIG[WorkflowStep.SUBMISSION].next_action})

    AuditLogRepository(supabase).record(
        action="Submission rejected",
        category=AuditCategory.SUBMISSION,
        details=f"{submission.get('packRef')}: {reason}",
        user_id=job.get("createdByUserId"),
        client_company_id=claim.get("clientCompanyId") if claim else None,
        claim_pack_id=claim.get("id") if claim else None,
    )


# ============================================================================
# Handler Registration
# ============================================================================

def register_all_handlers(runner: JobRunner):
    """Register all job handlers with a runner."""
    runner.register_handler(JobType.CT600_EXTRACTION, handle_ct600_extraction, on_abort=release_ct600_extraction)
    runner.register_handler(JobType.HMRC_VALIDATION, handle_hmrc_validation, on_abort=release_hmrc_validation)
    logger.info("All job handlers registered")
