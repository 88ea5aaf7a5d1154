"""
Job Types and Schemas

Defines enums and Pydantic models for the background job system.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class JobType(str, Enum):
    """Types of background jobs supported by TaxEngine."""
    CT600_EXTRACTION = "ct600_extraction"
    HMRC_VALIDATION = "hmrc_validation"


class JobStatus(str, Enum):
    """Status of a background job."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CANCELLATION_REQUESTED = "cancellation_requested"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobEventType(str, Enum):
    """Types of events that can be logged during job execution."""
    PROGRESS_UPDATE = "progress_update"
    STAGE_CHANGE = "stage_change"
    LOG = "log"
    WARNING = "warning"
    ERROR = "error"


class JobProgress(BaseModel):
    """Progress information for a running job."""
    percent: Optional[float] = Field(default=0, ge=0, le=100)
    stage: str = Field(default="queued")
    detail: Optional[str] = None


class JobError(BaseModel):
    """Structured error information for failed jobs."""
    error_type: str  # e.g. "ValueError", "no_handler"
    message: str
    hint: Optional[str] = None  # User-friendly suggestion
    failing_stage: Optional[str] = None


class JobResult(BaseModel):
    """Result of a completed job."""
    success: bool
    outputs: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


# ============================================================================
# Job-specific parameter schemas
# ============================================================================

class CT600ExtractionParams(BaseModel):
    """Parameters for ct600_extraction job."""
    claim_pack_uuid: str
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    user_id: Optional[int] = None


class HMRCValidationParams(BaseModel):
    """Parameters for hmrc_validation job."""
    submission_uuid: str
    claim_pack_uuid: str
    user_id: Optional[int] = None


# ============================================================================
# API Response Schemas
# ============================================================================

class JobStartResponse(BaseModel):
    """Handle returned when a job is queued."""
    job_id: str
    status: JobStatus
    progress: JobProgress
    existing_job: bool = False  # True if returning existing job due to idempotency


class JobStatusResponse(BaseModel):
    """Response for job status query."""
    job_id: str
    job_type: JobType
    status: JobStatus
    progress: JobProgress
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    can_cancel: bool = False


class JobEventItem(BaseModel):
    """Single job event."""
    id: Optional[Any] = None
    event_type: JobEventType
    message: str
    data: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None


class JobEventsResponse(BaseModel):
    """Response for job events query."""
    job_id: str
    events: List[JobEventItem]
    total_count: int
