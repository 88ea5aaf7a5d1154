"""
TaxEngine Background Jobs

Persisted background jobs for the slow claim steps (CT600 extraction and
HMRC pre-submission validation). Jobs are queued in BackgroundJobs, run
in-process through FastAPI BackgroundTasks and polled by the client.

Key components:
- job_types: Job type definitions and schemas
- job_manager: Job creation, status management, and idempotency
- runner: Job execution with progress and cancellation
- handlers: Task-specific job handlers
"""

from taxengine.jobs.job_types import (
    JobType,
    JobStatus,
    JobEventType,
    JobProgress,
    JobError,
    JobResult,
    JobStartResponse,
    JobStatusResponse,
)

from taxengine.jobs.job_manager import (
    JobManager,
    job_status_response,
)

from taxengine.jobs.runner import (
    JobRunner,
    JobContext,
    get_runner,
    execute_job_task,
)

__all__ = [
    # Types
    "JobType",
    "JobStatus",
    "JobEventType",
    "JobProgress",
    "JobError",
    "JobResult",
    "JobStartResponse",
    "JobStatusResponse",
    # Manager
    "JobManager",
    "job_status_response",
    # Runner
    "JobRunner",
    "JobContext",
    "get_runner",
    "execute_job_task",
]
