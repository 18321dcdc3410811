"""
Request Instance Models
One request row per section execution, its approval-step state and its history
"""

import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chainflow.models.base import GUID, JSON, BaseModel, utcnow


class RequestStatus(enum.Enum):
    """Lifecycle of a request"""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    NEEDS_REVISION = "NEEDS_REVISION"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
)


class StepStatus(enum.Enum):
    """State of a single approval step of a request"""

    WAITING = "WAITING"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REQUESTED_CLARIFICATION = "REQUESTED_CLARIFICATION"
    REQUESTED_REVISION = "REQUESTED_REVISION"


class HistoryAction(enum.Enum):
    """Every action that can be recorded against a request"""

    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SEND_BACK = "SEND_BACK"
    REQUEST_CLARIFICATION = "REQUEST_CLARIFICATION"
    RESOLVE_CLARIFICATION = "RESOLVE_CLARIFICATION"
    ASK_PREVIOUS_SECTION = "ASK_PREVIOUS_SECTION"
    CANCEL = "CANCEL"
    RESUBMIT = "RESUBMIT"
    COMMENT = "COMMENT"


class ClarificationScope(enum.Enum):
    """Audience of a clarification question"""

    CURRENT_SECTION_APPROVERS = "current-section-approvers"
    PREVIOUS_SECTION_PARTICIPANTS = "previous-section-participants"


CLARIFICATION_ACTIONS = frozenset(
    {HistoryAction.REQUEST_CLARIFICATION, HistoryAction.ASK_PREVIOUS_SECTION}
)


class Request(BaseModel):
    """A submitted (or drafted) instance of one section's form"""

    __tablename__ = "requests"

    workflow_chain_id = Column(GUID(), ForeignKey("workflow_chains.id"), nullable=False)
    current_section_order = Column(Integer, nullable=False, default=0)
    form_template_id = Column(GUID(), nullable=True)
    business_unit_id = Column(GUID(), nullable=False, index=True)
    organization_id = Column(GUID(), nullable=True)

    # Initiator; null only for a spawned draft still waiting to be claimed
    initiator_id = Column(GUID(), nullable=True, index=True)
    initiator_role_ids = Column(JSON, nullable=True)

    status = Column(Enum(RequestStatus), nullable=False, default=RequestStatus.DRAFT)
    data = Column(JSON, nullable=False, default=dict)

    # Section-to-section linkage
    parent_request_id = Column(GUID(), ForeignKey("requests.id"), nullable=True)
    root_request_id = Column(GUID(), nullable=True, index=True)
    skip_reason = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Compare-and-swap guard: every state-changing action bumps this column
    version_id = Column(Integer, nullable=False)

    # Relationships
    chain = relationship("WorkflowChain")
    steps = relationship(
        "RequestApprovalStep",
        back_populates="request",
        order_by="RequestApprovalStep.step_number",
        cascade="all, delete-orphan",
    )
    parent = relationship("Request", remote_side="Request.id")

    # At most one next-section request per parent
    __table_args__ = (UniqueConstraint("parent_request_id", name="uq_request_parent"),)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def current_step(self):
        """The PENDING step, if any"""
        return next((s for s in self.steps if s.status == StepStatus.PENDING), None)

    def step(self, step_number: int):
        return next((s for s in self.steps if s.step_number == step_number), None)

    def __repr__(self):
        return f"<Request(id='{self.id}', section={self.current_section_order}, status='{self.status}')>"


class RequestApprovalStep(BaseModel):
    """Approval-step state of a request, one row per step of its section"""

    __tablename__ = "request_approval_steps"

    request_id = Column(GUID(), ForeignKey("requests.id"), nullable=False)
    step_number = Column(Integer, nullable=False)
    approver_role_id = Column(String(64), nullable=False)

    # Bound when an eligible approver acts
    approver_id = Column(GUID(), nullable=True)
    status = Column(Enum(StepStatus), nullable=False, default=StepStatus.WAITING)
    actioned_at = Column(DateTime(timezone=True), nullable=True)

    request = relationship("Request", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("request_id", "step_number", name="uq_request_step_number"),
    )

    def __repr__(self):
        return f"<RequestApprovalStep(step={self.step_number}, status='{self.status}')>"


class RequestHistory(BaseModel):
    """Append-only audit entry; clarification entries carry resolution fields"""

    __tablename__ = "request_history"

    request_id = Column(GUID(), ForeignKey("requests.id"), nullable=False)
    sequence = Column(Integer, nullable=False)  # 1-based per request
    actor_id = Column(GUID(), nullable=False)
    action = Column(Enum(HistoryAction), nullable=False)
    comments = Column(Text, nullable=True)

    from_status = Column(Enum(RequestStatus), nullable=True)
    to_status = Column(Enum(RequestStatus), nullable=True)
    from_step_number = Column(Integer, nullable=True)
    to_step_number = Column(Integer, nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=True)

    # Clarification extension
    scope = Column(Enum(ClarificationScope), nullable=True)
    addressed_to = Column(JSON, nullable=True)
    target_request_id = Column(GUID(), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolver_id = Column(GUID(), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_request_history_sequence"),
        Index("ix_request_history_request_created", "request_id", "created_at"),
    )

    @property
    def is_clarification(self) -> bool:
        return self.action in CLARIFICATION_ACTIONS

    def __repr__(self):
        return f"<RequestHistory(request='{self.request_id}', seq={self.sequence}, action='{self.action}')>"


class UserRoleAssignment(BaseModel):
    """Backing table of the bundled database role provider"""

    __tablename__ = "user_role_assignments"

    user_id = Column(GUID(), nullable=False, index=True)
    business_unit_id = Column(GUID(), nullable=False, index=True)
    role_id = Column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "business_unit_id", "role_id", name="uq_user_bu_role"
        ),
    )
