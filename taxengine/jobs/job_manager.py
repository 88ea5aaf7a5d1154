"""
Job Manager

Handles job creation, status management and idempotency enforcement.
This is the primary interface for creating and managing background jobs.
"""

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from taxengine.jobs.job_types import (
    JobType, JobStatus, JobEventType, JobProgress, JobError, JobResult, JobStatusResponse,
    TERMINAL_STATUSES,
)
from taxengine.supabase_client import get_supabase
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

JOBS_TABLE = "BackgroundJobs"
EVENTS_TABLE = "JobEvents"


class JobManager:
    """
    Manages background job lifecycle including creation, status updates
    and idempotency enforcement.
    """

    def __init__(self, supabase=None):
        self.supabase = supabase if supabase is not None else get_supabase()

    def compute_idempotency_key(
        self,
        job_type: JobType,
        claim_pack_uuid: Optional[str],
        params: Dict[str, Any]
    ) -> str:
        """
        Compute a deterministic idempotency key for a job.
        Same inputs = same key = no duplicate jobs.
        """
        key_parts = [job_type.value]

        if claim_pack_uuid:
            key_parts.append(f"claim:{claim_pack_uuid}")

        params_for_hash = {k: v for k, v in params.items() if k not in ("user_id", "request_id")}
        params_hash = hashlib.md5(
            json.dumps(params_for_hash, sort_keys=True, default=str).encode()
        ).hexdigest()[:12]
        key_parts.append(f"params:{params_hash}")

        return ":".join(key_parts)

    def find_existing_job(self, idempotency_key: str) -> Optional[Dict[str, Any]]:
        """Find a queued or running job with the same idempotency key."""
        result = self.supabase.table(JOBS_TABLE)\
            .select("*")\
            .eq("idempotencyKey", idempotency_key)\
            .in_("status", [JobStatus.QUEUED.value, JobStatus.RUNNING.value])\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def create_job(
        self,
        job_type: JobType,
        params: Dict[str, Any] = None,
        user_id: Optional[int] = None,
        client_company_uuid: Optional[str] = None,
        claim_pack_uuid: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Create a new job or return the existing one if the idempotency key matches.

        Returns:
            Tuple of (job_record, is_existing)
        """
        params = params or {}
        idempotency_key = self.compute_idempotency_key(job_type, claim_pack_uuid, params)

        existing = self.find_existing_job(idempotency_key)
        if existing:
            logger.info(f"Returning existing job {existing['id']} for idempotency key {idempotency_key}")
            return existing, True

        now = utc_now_iso()
        job_id = str(uuid4())
        job_record = {
            "id": job_id,
            "jobType": job_type.value,
            "status": JobStatus.QUEUED.value,
            "idempotencyKey": idempotency_key,
            "params": params,
            "progress": {"percent": 0, "stage": "queued", "detail": None},
            "result": None,
            "error": None,
            "clientCompanyUuid": client_company_uuid,
            "claimPackUuid": claim_pack_uuid,
            "createdByUserId": user_id,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            result = self.supabase.table(JOBS_TABLE).insert(job_record).execute()
        except Exception as e:
            # Unique constraint on the key means another request won the race
            if "duplicate key" in str(e).lower():
                existing = self.find_existing_job(idempotency_key)
                if existing:
                    return existing, True
            logger.error(f"Error creating job: {e}")
            raise

        created_job = result.data[0] if result.data else job_record
        self.log_event(job_id, JobEventType.STAGE_CHANGE, "Job created and queued", {"job_type": job_type.value})
        logger.info(f"Created job {job_id} of type {job_type.value}")
        return created_job, False

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(JOBS_TABLE)\
            .select("*")\
            .eq("id", job_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[Dict[str, Any]] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Update job status and optionally progress/result/error."""
        now = utc_now_iso()
        update_data = {"status": status.value, "updatedAt": now}

        if progress:
            update_data["progress"] = progress
        if status == JobStatus.RUNNING:
            update_data["startedAt"] = now
        if status in TERMINAL_STATUSES:
            update_data["completedAt"] = now
        if result:
            update_data["result"] = result
        if error:
            update_data["error"] = error

        try:
            self.supabase.table(JOBS_TABLE).update(update_data).eq("id", job_id).execute()
            return True
        except Exception as e:
            logger.error(f"Error updating job {job_id} status: {e}")
            return False

    def update_progress(self, job_id: str, percent: float, stage: str, detail: Optional[str] = None) -> bool:
        progress = {"percent": min(100, max(0, percent)), "stage": stage, "detail": detail}
        try:
            self.supabase.table(JOBS_TABLE)\
                .update({"progress": progress, "updatedAt": utc_now_iso()})\
                .eq("id", job_id)\
                .execute()
            return True
        except Exception as e:
            logger.error(f"Error updating progress for job {job_id}: {e}")
            return False

    def mark_completed(self, job_id: str, result: Dict[str, Any], warnings: List[str] = None) -> bool:
        """Mark job as completed with result."""
        result_data = JobResult(success=True, outputs=result, warnings=warnings or []).model_dump()
        progress = {"percent": 100, "stage": "completed", "detail": None}

        success = self.update_job_status(job_id, JobStatus.COMPLETED, progress=progress, result=result_data)
        if success:
            self.log_event(
                job_id,
                JobEventType.STAGE_CHANGE,
                "Job completed successfully",
                {"warnings_count": len(warnings or [])}
            )
        return success

    def mark_failed(
        self,
        job_id: str,
        error_type: str,
        message: str,
        hint: Optional[str] = None,
        failing_stage: Optional[str] = None,
        stack_trace: Optional[str] = None,
    ) -> bool:
        """Mark job as failed with error details."""
        error_data = JobError(
            error_type=error_type,
            message=message,
            hint=hint,
            failing_stage=failing_stage,
        ).model_dump()

        # Stack traces go to the logs only
        if stack_trace:
            logger.error(f"Job {job_id} failed with stack trace:\n{stack_trace}")

        progress = {"percent": None, "stage": "failed", "detail": message[:200]}

        success = self.update_job_status(job_id, JobStatus.FAILED, progress=progress, error=error_data)
        if success:
            self.log_event(
                job_id,
                JobEventType.ERROR,
                f"Job failed: {message}",
                {"error_type": error_type, "failing_stage": failing_stage}
            )
        return success

    def cancel_job(self, job_id: str, user_id: Optional[int] = None) -> Tuple[bool, str]:
        """Cancel a job. Returns (success, message)."""
        job = self.get_job(job_id)
        if not job:
            return False, "Job not found"

        status = job.get("status")

        if status in [s.value for s in TERMINAL_STATUSES]:
            return False, f"Cannot cancel job with status '{status}'"

        if status in (JobStatus.RUNNING.value, JobStatus.CANCELLATION_REQUESTED.value):
            # The runner checks for this between steps
            self.update_job_status(job_id, JobStatus.CANCELLATION_REQUESTED)
            self.log_event(job_id, JobEventType.LOG, "Cancellation requested by user", {"user_id": user_id})
            return True, "Cancellation requested - job will stop at next checkpoint"

        self.update_job_status(job_id, JobStatus.CANCELLED)
        self.log_event(job_id, JobEventType.STAGE_CHANGE, "Job cancelled by user", {"user_id": user_id})
        return True, "Job cancelled"

    def get_job_events(self, job_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        result = self.supabase.table(EVENTS_TABLE)\
            .select("*")\
            .eq("jobId", job_id)\
            .order("createdAt", desc=True)\
            .limit(limit)\
            .execute()
        return result.data or []

    def check_cancellation_requested(self, job_id: str) -> bool:
        job = self.get_job(job_id)
        return bool(job) and job.get("status") in (
            JobStatus.CANCELLATION_REQUESTED.value, JobStatus.CANCELLED.value,
        )

    def log_event(
        self,
        job_id: str,
        event_type: JobEventType,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Append an event for a job. Best effort."""
        try:
            self.supabase.table(EVENTS_TABLE).insert({
                "jobId": job_id,
                "eventType": event_type.value,
                "message": message,
                "data": data,
                "createdAt": utc_now_iso(),
            }).execute()
            return True
        except Exception as e:
            logger.error(f"Error logging event for job {job_id}: {e}")
            return False


def job_status_response(job: Dict[str, Any]) -> JobStatusResponse:
    """Shape a BackgroundJobs row for the API."""
    status = JobStatus(job["status"])
    return JobStatusResponse(
        job_id=job["id"],
        job_type=JobType(job["jobType"]),
        status=status,
        progress=JobProgress(**(job.get("progress") or {})),
        result=job.get("result"),
        error=job.get("error"),
        started_at=job.get("startedAt"),
        completed_at=job.get("completedAt"),
        created_at=job.get("createdAt"),
        can_cancel=status in (JobStatus.QUEUED, JobStatus.RUNNING),
    )
