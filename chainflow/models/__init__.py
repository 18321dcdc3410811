# Database models package

from chainflow.models.base import AuditMixin, BaseModel, TimestampMixin, UUIDMixin
from chainflow.models.request import (
    CLARIFICATION_ACTIONS,
    TERMINAL_STATUSES,
    ClarificationScope,
    HistoryAction,
    Request,
    RequestApprovalStep,
    RequestHistory,
    RequestStatus,
    StepStatus,
    UserRoleAssignment,
)
from chainflow.models.workflow import (
    ChainStatus,
    InitiatorType,
    TriggerCondition,
    WorkflowChain,
    WorkflowSection,
    WorkflowSectionStep,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "AuditMixin",
    "WorkflowChain",
    "WorkflowSection",
    "WorkflowSectionStep",
    "ChainStatus",
    "InitiatorType",
    "TriggerCondition",
    "Request",
    "RequestApprovalStep",
    "RequestHistory",
    "RequestStatus",
    "StepStatus",
    "HistoryAction",
    "ClarificationScope",
    "UserRoleAssignment",
    "TERMINAL_STATUSES",
    "CLARIFICATION_ACTIONS",
]
