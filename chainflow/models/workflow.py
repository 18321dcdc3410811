"""
Workflow Chain Definition Models
Versioned chains of sections, each section an ordered list of approver steps
"""

import enum

from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chainflow.models.base import GUID, JSON, AuditMixin, BaseModel


class ChainStatus(enum.Enum):
    """Lifecycle of a chain definition"""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class TriggerCondition(enum.Enum):
    """Outcome of a section that hands over to the next section"""

    WHEN_APPROVED = "WHEN_APPROVED"
    WHEN_REJECTED = "WHEN_REJECTED"
    WHEN_COMPLETED = "WHEN_COMPLETED"
    WHEN_FLAGGED = "WHEN_FLAGGED"
    WHEN_CLARIFICATION_REQUESTED = "WHEN_CLARIFICATION_REQUESTED"


class InitiatorType(enum.Enum):
    """Who may start a section"""

    SPECIFIC_ROLE = "specific_role"
    LAST_APPROVER = "last_approver"


class WorkflowChain(BaseModel, AuditMixin):
    """One version of a multi-section approval chain for a business unit"""

    __tablename__ = "workflow_chains"

    business_unit_id = Column(GUID(), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Versioning (copy-on-edit)
    version = Column(Integer, nullable=False, default=1)
    is_latest = Column(Boolean, nullable=False, default=True)
    status = Column(Enum(ChainStatus), nullable=False, default=ChainStatus.DRAFT)
    parent_chain_id = Column(GUID(), ForeignKey("workflow_chains.id"), nullable=True)

    # Relationships
    sections = relationship(
        "WorkflowSection",
        back_populates="chain",
        order_by="WorkflowSection.order",
        cascade="all, delete-orphan",
    )
    parent_chain = relationship("WorkflowChain", remote_side="WorkflowChain.id")

    __table_args__ = (
        Index("ix_workflow_chains_bu_name", "business_unit_id", "name"),
        # A version is superseded by at most one newer version
        UniqueConstraint("parent_chain_id", name="uq_workflow_chain_parent"),
    )

    def section_at(self, order: int):
        return next((s for s in self.sections if s.order == order), None)

    @property
    def last_section_order(self) -> int:
        return max((s.order for s in self.sections), default=-1)

    def __repr__(self):
        return f"<WorkflowChain(name='{self.name}', version={self.version}, status='{self.status}')>"


class WorkflowSection(BaseModel):
    """One stage of a chain: its form, its initiators and its approver steps"""

    __tablename__ = "workflow_sections"

    chain_id = Column(GUID(), ForeignKey("workflow_chains.id"), nullable=False)
    order = Column(Integer, nullable=False)  # 0-based
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    form_template_id = Column(GUID(), nullable=True)

    # Initiation
    initiator_type = Column(
        Enum(InitiatorType), nullable=False, default=InitiatorType.SPECIFIC_ROLE
    )
    initiator_role_ids = Column(JSON, nullable=False, default=list)

    # Hand-over to the next section
    trigger_condition = Column(
        Enum(TriggerCondition), nullable=False, default=TriggerCondition.WHEN_APPROVED
    )
    auto_trigger = Column(Boolean, nullable=False, default=False)
    auto_submit = Column(Boolean, nullable=False, default=False)
    target_template_id = Column(GUID(), nullable=True)

    # Relationships
    chain = relationship("WorkflowChain", back_populates="sections")
    steps = relationship(
        "WorkflowSectionStep",
        back_populates="section",
        order_by="WorkflowSectionStep.step_number",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("chain_id", "order", name="uq_workflow_section_order"),
    )

    def __repr__(self):
        return f"<WorkflowSection(order={self.order}, name='{self.name}')>"


class WorkflowSectionStep(BaseModel):
    """An approver role's turn within a section"""

    __tablename__ = "workflow_section_steps"

    section_id = Column(GUID(), ForeignKey("workflow_sections.id"), nullable=False)
    step_number = Column(Integer, nullable=False)  # 1-based
    approver_role_id = Column(String(64), nullable=False)

    section = relationship("WorkflowSection", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("section_id", "step_number", name="uq_section_step_number"),
    )

    def __repr__(self):
        return f"<WorkflowSectionStep(step={self.step_number}, role='{self.approver_role_id}')>"
