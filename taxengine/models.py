from enum import Enum
from typing import List


class UserRole(str, Enum):
    ADMINISTRATOR = "ADMINISTRATOR"
    CLAIM_PROCESSOR = "CLAIM_PROCESSOR"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING_INVITATION = "PENDING_INVITATION"


class AuditCategory(str, Enum):
    AUTH = "AUTH"
    CLAIM = "CLAIM"
    CLIENT = "CLIENT"
    SUBMISSION = "SUBMISSION"
    SETTINGS = "SETTINGS"
    USER = "USER"
    DOCUMENT = "DOCUMENT"


class TemplateCategory(str, Enum):
    EXPORT = "EXPORT"
    REPORT = "REPORT"
    LETTER = "LETTER"


class ClaimStage(str, Enum):
    UPLOAD = "UPLOAD"
    SCAN_EXTRACT = "SCAN_EXTRACT"
    BUILD_CT600 = "BUILD_CT600"
    REVIEW = "REVIEW"
    SUBMIT = "SUBMIT"


class ClaimStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    AWAITING = "AWAITING"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    PENDING_RESPONSE = "PENDING_RESPONSE"


class GatewayStatus(str, Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    EXPIRED = "EXPIRED"


class PeriodStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    PROOFING = "PROOFING"
    SIGNED = "SIGNED"
    ISSUED = "ISSUED"
    SUBMITTED = "SUBMITTED"


# Lifecycle orderings (index = position)
CLAIM_STAGE_ORDER: List[ClaimStage] = list(ClaimStage)
PERIOD_STATUS_ORDER: List[PeriodStatus] = list(PeriodStatus)

# Column stamped when a claim pack reaches each stage
STAGE_TIMESTAMP_FIELDS = {
    ClaimStage.UPLOAD: "uploadCompletedAt",
    ClaimStage.SCAN_EXTRACT: "scanExtractCompletedAt",
    ClaimStage.BUILD_CT600: "buildCt600CompletedAt",
    ClaimStage.REVIEW: "reviewCompletedAt",
    ClaimStage.SUBMIT: "submittedAt",
}


def stage_index(stage: ClaimStage) -> int:
    return CLAIM_STAGE_ORDER.index(ClaimStage(stage))


def period_status_index(status: PeriodStatus) -> int:
    return PERIOD_STATUS_ORDER.index(PeriodStatus(status))
