from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple
from pydantic import BaseModel

from taxengine.models import (
    ClaimStage, PeriodStatus, STAGE_TIMESTAMP_FIELDS, CLAIM_STAGE_ORDER, stage_index,
)

# Claim workflow steps, in the order a claim normally moves through them
class WorkflowStep(str, Enum):
    SCAN_CT600 = "scan-ct600"
    EXTRACTING = "extracting"
    REVIEW_INFO = "review-info"
    ADJUSTMENTS = "adjustments"
    FINAL_REVIEW = "final-review"
    DOCUSIGN = "docusign"
    SUBMISSION = "submission"


class StepConfig(BaseModel):
    stage: ClaimStage
    progress: int
    next_action: str
    period_status: Optional[PeriodStatus] = None


WORKFLOW_CONFIG: Dict[WorkflowStep, StepConfig] = {
    WorkflowStep.SCAN_CT600: StepConfig(
        stage=ClaimStage.UPLOAD, progress=0,
        next_action="Upload CT600 documents",
        period_status=PeriodStatus.IN_PROGRESS,
    ),
    WorkflowStep.EXTRACTING: StepConfig(
        stage=ClaimStage.SCAN_EXTRACT, progress=15,
        next_action="Waiting for CT600 extraction",
    ),
    WorkflowStep.REVIEW_INFO: StepConfig(
        stage=ClaimStage.BUILD_CT600, progress=35,
        next_action="Review extracted company information",
    ),
    WorkflowStep.ADJUSTMENTS: StepConfig(
        stage=ClaimStage.BUILD_CT600, progress=50,
        next_action="Apply R&D adjustments",
    ),
    WorkflowStep.FINAL_REVIEW: StepConfig(
        stage=ClaimStage.REVIEW, progress=70,
        next_action="Final review of the CT600",
        period_status=PeriodStatus.PROOFING,
    ),
    WorkflowStep.DOCUSIGN: StepConfig(
        stage=ClaimStage.REVIEW, progress=85,
        next_action="Collect client e-signature",
    ),
    WorkflowStep.SUBMISSION: StepConfig(
        stage=ClaimStage.REVIEW, progress=90,
        next_action="Submit to HMRC",
        period_status=PeriodStatus.SIGNED,
    ),
}

TRANSITIONS: Dict[WorkflowStep, FrozenSet[WorkflowStep]] = {
    WorkflowStep.SCAN_CT600: frozenset({WorkflowStep.EXTRACTING}),
    WorkflowStep.EXTRACTING: frozenset({WorkflowStep.REVIEW_INFO, WorkflowStep.SCAN_CT600}),
    WorkflowStep.REVIEW_INFO: frozenset({WorkflowStep.ADJUSTMENTS, WorkflowStep.SCAN_CT600}),
    WorkflowStep.ADJUSTMENTS: frozenset({WorkflowStep.FINAL_REVIEW, WorkflowStep.REVIEW_INFO}),
    WorkflowStep.FINAL_REVIEW: frozenset({
        WorkflowStep.DOCUSIGN, WorkflowStep.REVIEW_INFO, WorkflowStep.ADJUSTMENTS,
    }),
    WorkflowStep.DOCUSIGN: frozenset({WorkflowStep.SUBMISSION}),
    WorkflowStep.SUBMISSION: frozenset(),
}

# Only background jobs or dedicated endpoints may take these edges
SYSTEM_TRANSITIONS: FrozenSet[Tuple[WorkflowStep, WorkflowStep]] = frozenset({
    (WorkflowStep.SCAN_CT600, WorkflowStep.EXTRACTING),
    (WorkflowStep.EXTRACTING, WorkflowStep.REVIEW_INFO),
    # Failed or cancelled extraction hands the claim back for re-upload
    (WorkflowStep.EXTRACTING, WorkflowStep.SCAN_CT600),
})


class WorkflowError(Exception):
    """Raised for a transition the workflow does not allow."""


def current_step(claim: Dict[str, Any]) -> WorkflowStep:
    return WorkflowStep(claim.get("workflowStep") or WorkflowStep.SCAN_CT600.value)


def can_advance(current: WorkflowStep, target: WorkflowStep, system: bool = False) -> bool:
    if target not in TRANSITIONS[current]:
        return False
    if (current, target) in SYSTEM_TRANSITIONS and not system:
        return False
    return True


def stage_updates(current_stage: Optional[str], target_stage: ClaimStage, now_iso: str) -> Dict[str, Any]:
    """
    Moving a claim pack forward stamps the completion time of every stage it
    leaves behind. Reaching SUBMIT also stamps submittedAt. Never moves back.
    """
    current = ClaimStage(current_stage) if current_stage else ClaimStage.UPLOAD
    if stage_index(target_stage) <= stage_index(current):
        return {}

    updates: Dict[str, Any] = {"currentStage": target_stage.value}
    for stage in CLAIM_STAGE_ORDER[stage_index(current):stage_index(target_stage)]:
        updates[STAGE_TIMESTAMP_FIELDS[stage]] = now_iso
    if target_stage == ClaimStage.SUBMIT:
        updates[STAGE_TIMESTAMP_FIELDS[ClaimStage.SUBMIT]] = now_iso
    return updates


def plan_transition(
    claim: Dict[str, Any],
    target: WorkflowStep,
    now_iso: str,
    system: bool = False,
) -> Tuple[Dict[str, Any], Optional[PeriodStatus]]:
    """
    Work out the claim pack update for moving to `target`.

    Returns (claim_updates, period_status). Stage and progress are high-water
    marks, so stepping back to an earlier screen keeps them. period_status is
    the status the linked period should reach, or None.
    """
    current = current_step(claim)
    if not can_advance(current, target, system=system):
        raise WorkflowError(f"Cannot move claim from '{current.value}' to '{target.value}'")

    config = WORKFLOW_CONFIG[target]
    updates: Dict[str, Any] = {
        "workflowStep": target.value,
        "nextAction": config.next_action,
        "progress": max(int(claim.get("progress") or 0), config.progress),
        "updatedAt": now_iso,
    }
    updates.update(stage_updates(claim.get("currentStage"), config.stage, now_iso))
    return updates, config.period_status
