"""
Job Runner

Executes background jobs in-process with lifecycle management:
- Progress tracking
- Cancellation checking
- Error handling with user-facing hints
"""

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from taxengine.jobs.job_types import JobType, JobStatus, JobEventType
from taxengine.jobs.job_manager import JobManager

logger = logging.getLogger(__name__)


class JobCancelled(Exception):
    """Raised by a handler that stops at a cancellation checkpoint."""


@dataclass
class JobContext:
    """
    Context object passed to job handlers.
    Provides progress reporting, event logging and cancellation checks.
    """
    job_id: str
    job_type: JobType
    params: Dict[str, Any]
    user_id: Optional[int]
    client_company_uuid: Optional[str]
    claim_pack_uuid: Optional[str]

    _manager: JobManager = field(repr=False)
    _cancelled: bool = field(default=False, repr=False)
    _current_stage: str = field(default="starting", repr=False)
    _current_percent: float = field(default=0, repr=False)
    _warnings: List[str] = field(default_factory=list, repr=False)

    @property
    def supabase(self):
        return self._manager.supabase

    def update_progress(self, percent: float, stage: str, detail: Optional[str] = None):
        self._current_percent = percent
        self._current_stage = stage
        self._manager.update_progress(self.job_id, percent=percent, stage=stage, detail=detail)
        self._manager.log_event(
            self.job_id,
            JobEventType.PROGRESS_UPDATE,
            f"Progress: {percent:.0f}% - {stage}",
            {"percent": percent, "stage": stage, "detail": detail}
        )

    def set_stage(self, stage: str, detail: Optional[str] = None):
        """Update stage without changing percent."""
        self._current_stage = stage
        self._manager.update_progress(self.job_id, percent=self._current_percent, stage=stage, detail=detail)
        self._manager.log_event(
            self.job_id,
            JobEventType.STAGE_CHANGE,
            f"Stage: {stage}",
            {"stage": stage, "detail": detail}
        )

    def log(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._manager.log_event(self.job_id, JobEventType.LOG, message, data)
        logger.info(f"[Job {self.job_id}] {message}")

    def warn(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._warnings.append(message)
        self._manager.log_event(self.job_id, JobEventType.WARNING, message, data)
        logger.warning(f"[Job {self.job_id}] Warning: {message}")

    def check_cancelled(self) -> bool:
        """True once cancellation has been requested."""
        if self._cancelled:
            return True
        if self._manager.check_cancellation_requested(self.job_id):
            self._cancelled = True
        return self._cancelled

    def raise_if_cancelled(self):
        if self.check_cancelled():
            raise JobCancelled(f"Job {self.job_id} cancelled at stage {self._current_stage}")

    def get_warnings(self) -> List[str]:
        return list(self._warnings)


class JobRunner:
    """Executes job handlers with lifecycle management."""

    def __init__(self):
        self._handlers: Dict[JobType, Callable] = {}
        self._abort_hooks: Dict[JobType, Callable] = {}

    def register_handler(self, job_type: JobType, handler: Callable, on_abort: Optional[Callable] = None):
        """
        on_abort(supabase, job, reason) runs after a job of this type fails or
        is cancelled, to release whatever the job was holding.
        """
        self._handlers[job_type] = handler
        if on_abort:
            self._abort_hooks[job_type] = on_abort
        logger.info(f"Registered handler for job type: {job_type.value}")

    def get_handler(self, job_type: JobType) -> Optional[Callable]:
        return self._handlers.get(job_type)

    def release_job(self, job: Dict[str, Any], manager: JobManager, reason: str):
        """Run the abort hook for a failed or cancelled job. Best effort."""
        try:
            hook = self._abort_hooks.get(JobType(job["jobType"]))
        except ValueError:
            return
        if not hook:
            return
        try:
            hook(manager.supabase, job, reason)
        except Exception as e:
            logger.error(f"Failed to release job {job.get('id')}: {e}")

    async def execute_job(self, job_id: str, manager: Optional[JobManager] = None) -> bool:
        """
        Execute a job by ID.
        Returns True if completed successfully, False otherwise.
        """
        # Resolved per run so the current Supabase client is used
        manager = manager or JobManager()

        job = manager.get_job(job_id)
        if not job:
            logger.error(f"Job {job_id} not found")
            return False

        if job.get("status") != JobStatus.QUEUED.value:
            logger.info(f"Skipping job {job_id} with status '{job.get('status')}'")
            return False

        job_type = JobType(job["jobType"])
        handler = self.get_handler(job_type)

        if not handler:
            logger.error(f"No handler registered for job type {job_type.value}")
            manager.mark_failed(
                job_id,
                error_type="no_handler",
                message=f"No handler registered for job type {job_type.value}",
                hint="This is a system configuration error. Please contact support."
            )
            return False

        manager.update_job_status(job_id, JobStatus.RUNNING)

        ctx = JobContext(
            job_id=job_id,
            job_type=job_type,
            params=job.get("params") or {},
            user_id=job.get("createdByUserId"),
            client_company_uuid=job.get("clientCompanyUuid"),
            claim_pack_uuid=job.get("claimPackUuid"),
            _manager=manager
        )

        logger.info(f"Starting job {job_id} of type {job_type.value}")

        try:
            if asyncio.iscoroutinefunction(handler):
                result = await handler(ctx)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, handler, ctx)

            if ctx.check_cancelled():
                raise JobCancelled(f"Job {job_id} cancelled during execution")

            manager.mark_completed(job_id, result=result or {}, warnings=ctx.get_warnings())
            logger.info(f"Job {job_id} completed successfully")
            return True

        except (JobCancelled, asyncio.CancelledError):
            manager.update_job_status(job_id, JobStatus.CANCELLED)
            manager.log_event(job_id, JobEventType.STAGE_CHANGE, "Job cancelled during execution")
            logger.info(f"Job {job_id} was cancelled")
            self.release_job(job, manager, "Job cancelled")
            return False

        except Exception as e:
            error_type = type(e).__name__
            manager.mark_failed(
                job_id,
                error_type=error_type,
                message=str(e),
                hint=self._get_error_hint(error_type, str(e)),
                failing_stage=ctx._current_stage,
                stack_trace=traceback.format_exc()
            )
            logger.error(f"Job {job_id} failed: {e}")
            self.release_job(job, manager, str(e))
            return False

    def _get_error_hint(self, error_type: str, message: str) -> str:
        """Get a user-friendly hint based on error type."""
        message_lower = message.lower()

        if "timeout" in message_lower:
            return "The operation timed out. Please try again."

        if "not found" in message_lower:
            return "A required record was not found. It may have been removed."

        if error_type == "ValidationError":
            return "The job input is invalid. Please check the claim data and try again."

        if error_type == "WorkflowError":
            return "The claim moved on while this job was running. Refresh and try again."

        return "An error occurred while processing. Please try again or contact support if the issue persists."


# ============================================================================
# Global runner instance
# ============================================================================

_runner: Optional[JobRunner] = None


def get_runner() -> JobRunner:
    """Get the global job runner instance, with all handlers registered."""
    global _runner
    if _runner is None:
        _runner = JobRunner()
        from taxengine.jobs.handlers import register_all_handlers
        register_all_handlers(_runner)
    return _runner


async def execute_job_task(job_id: str):
    """Background task entry point used with FastAPI BackgroundTasks."""
    try:
        await get_runner().execute_job(job_id)
    except Exception as e:
        logger.error(f"Error executing job {job_id}: {e}")
