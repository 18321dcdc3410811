"""
Request Schemas

Pydantic models for request instances, approval actions, history and
clarifications
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from chainflow.models.request import (
    ClarificationScope,
    HistoryAction,
    RequestStatus,
    StepStatus,
)
from chainflow.schemas.workflow import UUIDStr


def _strip_required(v: str) -> str:
    if not v.strip():
        raise ValueError("must not be blank")
    return v.strip()


RequiredText = Annotated[str, Field(max_length=2000), AfterValidator(_strip_required)]


class RequestStart(BaseModel):
    """Start (or start and submit) a section's request"""

    workflow_chain_id: UUIDStr
    section_order: int = Field(default=0, ge=0)
    data: Dict[str, Any] = Field(default_factory=dict)
    skip_reason: Optional[str] = Field(
        None, description="Why the chain is started past its first section"
    )
    parent_request_id: Optional[UUIDStr] = Field(
        None, description="Approved request of the previous section"
    )
    organization_id: Optional[UUIDStr] = None
    submit: bool = False


class RequestDraftUpdate(BaseModel):
    data: Dict[str, Any]


class SubmitPayload(BaseModel):
    data: Optional[Dict[str, Any]] = Field(
        None, description="Replaces the draft's data before submitting"
    )


class ApprovePayload(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)
    step_number: Optional[int] = Field(
        None, ge=1, description="Step the approver is acting on; rejected if no longer pending"
    )


class ReasonPayload(BaseModel):
    """Reject, send back and cancel all require a reason"""

    reason: RequiredText


class StepReasonPayload(ReasonPayload):
    step_number: Optional[int] = Field(None, ge=1)


class ResubmitPayload(BaseModel):
    data: Optional[Dict[str, Any]] = None
    comments: Optional[str] = Field(None, max_length=2000)


class ClarificationPayload(BaseModel):
    question: RequiredText


class CommentPayload(BaseModel):
    comment: RequiredText


class ApprovalStepResponse(BaseModel):
    step_number: int
    approver_role_id: str
    approver_id: Optional[str]
    status: StepStatus
    actioned_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class RequestSummary(BaseModel):
    """What every engine action returns"""

    id: str
    workflow_chain_id: str
    current_section_order: int
    form_template_id: Optional[str]
    business_unit_id: str
    organization_id: Optional[str]
    initiator_id: Optional[str]
    status: RequestStatus
    parent_request_id: Optional[str]
    root_request_id: Optional[str]
    skip_reason: Optional[str]
    current_step_number: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_request(cls, request) -> "RequestSummary":
        summary = cls.model_validate(request)
        current = request.current_step
        summary.current_step_number = current.step_number if current else None
        return summary


class RequestDetail(RequestSummary):
    data: Dict[str, Any]
    steps: List[ApprovalStepResponse]


class HistoryEntryResponse(BaseModel):
    id: str
    request_id: str
    sequence: int
    actor_id: str
    action: HistoryAction
    comments: Optional[str]
    from_status: Optional[RequestStatus]
    to_status: Optional[RequestStatus]
    from_step_number: Optional[int]
    to_step_number: Optional[int]
    entry_metadata: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClarificationResponse(HistoryEntryResponse):
    scope: Optional[ClarificationScope]
    addressed_to: Optional[List[str]]
    target_request_id: Optional[str]
    resolved_at: Optional[datetime]
    resolver_id: Optional[str]


class PendingSectionStart(BaseModel):
    """A completed section whose successor the actor is expected to start"""

    parent_request_id: str
    workflow_chain_id: str
    next_section_order: int
    next_section_name: str
    form_template_id: Optional[str]
