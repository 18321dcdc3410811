"""
Workflow Chain Schemas

Pydantic models for chain definitions, sections and approver steps
"""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from chainflow.models.base import normalize_id
from chainflow.models.workflow import ChainStatus, InitiatorType, TriggerCondition


def _uuid_string(v: str) -> str:
    normalized = normalize_id(v)
    if normalized is None:
        raise ValueError(f"'{v}' is not a valid UUID")
    return normalized


UUIDStr = Annotated[str, AfterValidator(_uuid_string)]


class WorkflowSectionInput(BaseModel):
    """Section definition as submitted when creating or versioning a chain"""

    id: Optional[UUIDStr] = Field(
        None, description="Id of the section this one replaces (new versions only)"
    )
    order: int = Field(..., ge=0, description="0-based position in the chain")
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    form_template_id: Optional[UUIDStr] = Field(None, description="Form the initiator fills")
    initiator_type: InitiatorType = InitiatorType.SPECIFIC_ROLE
    initiator_role_ids: List[str] = Field(default_factory=list)
    steps: List[str] = Field(..., description="Approver role ids in step order")
    trigger_condition: TriggerCondition = TriggerCondition.WHEN_APPROVED
    auto_trigger: bool = False
    auto_submit: bool = Field(
        default=False, description="Submit the spawned request right away"
    )
    target_template_id: Optional[UUIDStr] = Field(
        None, description="Form used by the next section instead of its own"
    )


class WorkflowChainCreate(BaseModel):
    """Schema for creating a new chain (version 1, draft)"""

    business_unit_id: UUIDStr
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    sections: List[WorkflowSectionInput] = Field(..., min_length=1)


class WorkflowChainEdit(BaseModel):
    """Edits applied when a new chain version is cut"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    sections: Optional[List[WorkflowSectionInput]] = None

    @field_validator("sections")
    @classmethod
    def sections_not_empty(cls, v):
        if v is not None and not v:
            raise ValueError("A chain needs at least one section")
        return v


class WorkflowStepResponse(BaseModel):
    step_number: int
    approver_role_id: str

    model_config = ConfigDict(from_attributes=True)


class WorkflowSectionResponse(BaseModel):
    id: str
    order: int
    name: str
    description: Optional[str]
    form_template_id: Optional[str]
    initiator_type: InitiatorType
    initiator_role_ids: List[str]
    trigger_condition: TriggerCondition
    auto_trigger: bool
    auto_submit: bool
    target_template_id: Optional[str]
    steps: List[WorkflowStepResponse]

    model_config = ConfigDict(from_attributes=True)


class WorkflowChainResponse(BaseModel):
    """Full chain definition with sections and steps"""

    id: str
    business_unit_id: str
    name: str
    description: Optional[str]
    version: int
    is_latest: bool
    status: ChainStatus
    parent_chain_id: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    sections: List[WorkflowSectionResponse]

    model_config = ConfigDict(from_attributes=True)


class WorkflowChainSummary(BaseModel):
    """List view of a chain"""

    id: str
    business_unit_id: str
    name: str
    version: int
    is_latest: bool
    status: ChainStatus
    section_count: int
    total_steps: int
    updated_at: datetime
