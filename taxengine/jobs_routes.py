"""
Background Jobs API Routes

Polling endpoints for the jobs queued by the claim workflow:
- Checking job status
- Reading the job event log
- Cancelling a queued or running job
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from taxengine.auth_permissions import AuthContext, Permission, get_auth_context
from taxengine.jobs import JobManager, JobStatus, get_runner, job_status_response
from taxengine.jobs.job_types import JobEventItem, JobEventsResponse
from taxengine.router_utils import internal_error, require_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("/{job_id}")
async def get_job_status(
    job_id: str,
    auth: AuthContext = Depends(get_auth_context)
):
    """Current status, progress, result and error of a job."""
    auth.require_permission(Permission.VIEW_CLAIMS)
    manager = JobManager(require_supabase())

    try:
        job = manager.get_job(job_id)
    except Exception as e:
        internal_error(f"fetching job {job_id}", e)

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_status_response(job).model_dump(mode="json")


@router.get("/{job_id}/events")
async def get_job_events(
    job_id: str,
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(get_auth_context)
):
    """Event log for a job, newest first."""
    auth.require_permission(Permission.VIEW_CLAIMS)
    manager = JobManager(require_supabase())

    try:
        if not manager.get_job(job_id):
            raise HTTPException(status_code=404, detail="Job not found")
        events = manager.get_job_events(job_id, limit=limit)
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"fetching events for job {job_id}", e)

    return JobEventsResponse(
        job_id=job_id,
        events=[
            JobEventItem(
                id=e.get("id"),
                event_type=e["eventType"],
                message=e.get("message") or "",
                data=e.get("data"),
                created_at=e.get("createdAt"),
            )
            for e in events
        ],
        total_count=len(events),
    ).model_dump(mode="json")


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Cancel a job. Queued jobs are cancelled immediately; running jobs stop
    at their next checkpoint.
    """
    auth.require_permission(Permission.EDIT_CLAIMS)
    manager = JobManager(require_supabase())

    try:
        success, message = manager.cancel_job(job_id, auth.profile_id)
    except Exception as e:
        internal_error(f"cancelling job {job_id}", e)

    if not success:
        status_code = 404 if message == "Job not found" else 409
        raise HTTPException(status_code=status_code, detail=message)

    # A queued job never reaches the runner once cancelled, so release it here
    job = manager.get_job(job_id)
    if job and job.get("status") == JobStatus.CANCELLED.value:
        get_runner().release_job(job, manager, "Job cancelled")

    logger.info(f"Job {job_id} cancel by user {auth.user_id}: {message}")
    return {"success": True, "message": message, "job_id": job_id}
