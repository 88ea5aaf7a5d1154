from typing import List, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from taxengine.models import (
    ClaimStage, GatewayStatus, TemplateCategory, UserRole, UserStatus,
)
from taxengine.workflow_engine import WorkflowStep


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class CamelModel(BaseModel):
    """Request bodies use camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


# =============================================================================
# CLIENTS
# =============================================================================

class ClientCreate(CamelModel):
    company_name: Optional[str] = None
    company_number: Optional[str] = None
    utr: Optional[str] = None
    paye_reference: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    company_year_end_month: Optional[int] = Field(default=None, ge=1, le=12)
    company_year_end_day: Optional[int] = Field(default=None, ge=1, le=31)


class BulkClientRow(CamelModel):
    name: Optional[str] = None
    number: Optional[str] = None
    utr: Optional[str] = None
    paye_reference: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    year_end_month: Optional[int] = Field(default=None, ge=1, le=12)
    year_end_day: Optional[int] = Field(default=None, ge=1, le=31)


class BulkImportRequest(CamelModel):
    clients: Optional[List[BulkClientRow]] = None


class ClientUpdate(CamelModel):
    company_name: Optional[str] = None
    utr: Optional[str] = None
    paye_reference: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


# =============================================================================
# ACCOUNTING PERIODS
# =============================================================================

class AccountingPeriodCreate(CamelModel):
    client_company_uuid: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class PeriodStatusUpdate(CamelModel):
    status: Optional[str] = None


# =============================================================================
# AUTH PROFILE
# =============================================================================

class CreateProfileRequest(CamelModel):
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class TrackLoginRequest(CamelModel):
    user_id: Optional[str] = None
    user_email: Optional[str] = None


# =============================================================================
# CLAIMS & SUBMISSIONS
# =============================================================================

class ClaimCreate(CamelModel):
    title: Optional[str] = None
    client_company_uuid: Optional[str] = None
    accounting_period_uuid: Optional[str] = None
    period_label: Optional[str] = None


class ClaimStageUpdate(CamelModel):
    stage: ClaimStage
    progress: int = Field(..., ge=0, le=100)


class WorkflowAdvanceRequest(CamelModel):
    step: WorkflowStep


class DocumentRef(CamelModel):
    name: str = Field(..., min_length=1)
    type: str = "ct600"


class ExtractionRequest(CamelModel):
    documents: List[DocumentRef] = Field(default_factory=list)


class SubmitClaimRequest(CamelModel):
    title: Optional[str] = None


# =============================================================================
# SETTINGS
# =============================================================================

class UserUpdate(CamelModel):
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class TemplateCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: TemplateCategory
    version: str = "1.0"
    description: Optional[str] = None
    is_default: bool = False


class TemplateUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[TemplateCategory] = None
    version: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class GatewayUpdate(CamelModel):
    name: Optional[str] = None
    agent_user_id: Optional[str] = None
    status: Optional[GatewayStatus] = None
    ct600_authorised: Optional[bool] = None
    rnd_authorised: Optional[bool] = None
    ixbrl_authorised: Optional[bool] = None


# =============================================================================
# SYSTEM
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    services: Dict[str, str]


def to_columns(model: CamelModel) -> Dict[str, object]:
    """Explicitly provided fields, keyed by their camelCase column names."""
    return model.model_dump(exclude_unset=True, by_alias=True, mode="json")
