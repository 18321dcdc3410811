"""
Request Service

Starts section requests (chain starts, skip-starts and manual next-section
starts), edits drafts and answers the read-side questions: a request, its
chain execution, an initiator's requests and each user's inboxes.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session, aliased

from chainflow.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chainflow.models.base import new_id, normalize_id
from chainflow.models.request import (
    Request,
    RequestApprovalStep,
    RequestStatus,
    StepStatus,
)
from chainflow.models.workflow import ChainStatus, InitiatorType, WorkflowChain, WorkflowSection
from chainflow.schemas.request import PendingSectionStart
from chainflow.services.approval_engine import (
    APPROVAL_TRIGGERS,
    ApprovalEngine,
    trigger_satisfied_by_approval,
)
from chainflow.services.form_validator import FormValidator
from chainflow.services.role_provider import RoleProvider

logger = logging.getLogger(__name__)


class RequestService:
    """Service for creating and querying section requests"""

    def __init__(
        self,
        db: Session,
        role_provider: RoleProvider,
        form_validator: Optional[FormValidator] = None,
        engine: Optional[ApprovalEngine] = None,
    ):
        self.db = db
        self.roles = role_provider
        self.engine = engine or ApprovalEngine(db, role_provider, form_validator)

    def start_request(
        self,
        chain_id: str,
        section_order: int,
        actor_id: str,
        data: Optional[Dict[str, Any]] = None,
        skip_reason: Optional[str] = None,
        parent_request_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        submit: bool = False,
    ) -> Request:
        """
        Create a section's request as a draft, optionally submitting it

        Without a parent this is a chain start (section 0) or a skip-start
        (later sections, reason required) and the chain must be active. With
        a parent it is the manual start of the section after the parent's.

        Raises:
            NotFoundError: Unknown chain, section or parent request
            ForbiddenError: The actor may not initiate this section
            ValidationError: Missing skip reason or a parent from elsewhere
            InvalidStateError: Chain not active, or parent not ready to hand over
        """
        with self.engine.unit_of_work("start_request", chain_id, actor_id):
            chain = self._get_chain(chain_id)
            section = chain.section_at(section_order)
            if section is None:
                raise NotFoundError("WorkflowSection", f"{chain.id}#{section_order}")

            request_id = new_id()
            if parent_request_id is not None:
                parent = self._check_parent(chain, section, parent_request_id, actor_id)
                root_request_id = parent.root_request_id or parent.id
                skip_reason = None
            else:
                parent = None
                root_request_id = request_id
                if chain.status != ChainStatus.ACTIVE:
                    raise InvalidStateError(
                        f"Chain {chain.id} is {chain.status.value}; only active chains accept new requests"
                    )
                roles = self.roles.get_roles_for_user(actor_id, chain.business_unit_id)
                if not roles & set(section.initiator_role_ids or []):
                    raise ForbiddenError(
                        f"You do not hold a role allowed to start section {section.order} ('{section.name}')"
                    )
                skip_reason = (skip_reason or "").strip() or None
                if section.order > 0 and skip_reason is None:
                    raise ValidationError(
                        "A skip reason is required to start a chain past its first section",
                        details={"section_order": section.order},
                    )

            request = Request(
                id=request_id,
                workflow_chain_id=chain.id,
                current_section_order=section.order,
                form_template_id=section.form_template_id,
                business_unit_id=chain.business_unit_id,
                organization_id=organization_id,
                initiator_id=actor_id,
                status=RequestStatus.DRAFT,
                data=data or {},
                parent_request_id=parent.id if parent else None,
                root_request_id=root_request_id,
                skip_reason=skip_reason,
            )
            self.db.add(request)
            self.db.flush()

            logger.info(
                f"Started request {request.id} for section {section.order} of chain {chain.id} "
                f"(parent={request.parent_request_id}, skip={bool(skip_reason)})"
            )

            if submit:
                self.engine.submit_draft(request, actor_id)
        return request

    def update_draft(self, request_id: str, actor_id: str, data: Dict[str, Any]) -> Request:
        """Replace a draft's data; a draft waiting to be claimed is claimed by the editor"""
        with self.engine.unit_of_work("update_draft", request_id, actor_id):
            request = self.engine.load_request(request_id)
            if request.status != RequestStatus.DRAFT:
                raise InvalidStateError(
                    f"Request {request.id} is {request.status.value}; only drafts can be edited"
                )
            self.engine.claim_or_check_initiator(request, actor_id)
            request.data = data
            self.engine.touch(request)
        return request

    def get_request(self, request_id: str) -> Request:
        normalized = normalize_id(request_id)
        request = None
        if normalized is not None:
            request = self.db.query(Request).filter(Request.id == normalized).first()
        if request is None:
            raise NotFoundError("Request", request_id)
        return request

    def get_request_chain(self, request_id: str) -> List[Request]:
        """Every request of the execution lineage, in section order"""
        request = self.get_request(request_id)
        root_id = request.root_request_id or request.id
        return (
            self.db.query(Request)
            .filter(Request.root_request_id == root_id)
            .order_by(Request.current_section_order, Request.created_at)
            .all()
        )

    def list_requests_for_initiator(
        self, actor_id: str, status: Optional[RequestStatus] = None
    ) -> List[Request]:
        query = self.db.query(Request).filter(Request.initiator_id == actor_id)
        if status is not None:
            query = query.filter(Request.status == status)
        return query.order_by(Request.created_at.desc()).all()

    def list_pending_approvals(self, actor_id: str, business_unit_id: str) -> List[Request]:
        """Requests in review whose pending step the actor may act on"""
        roles = self.roles.get_roles_for_user(actor_id, business_unit_id)
        if not roles:
            return []

        candidates = (
            self.db.query(Request)
            .join(RequestApprovalStep, RequestApprovalStep.request_id == Request.id)
            .filter(
                Request.business_unit_id == business_unit_id,
                Request.status == RequestStatus.IN_REVIEW,
                RequestApprovalStep.status == StepStatus.PENDING,
            )
            .order_by(Request.submitted_at)
            .all()
        )
        return [
            request
            for request in candidates
            if any(self.roles.is_eligible_approver(role_id, request.current_step) for role_id in roles)
        ]

    def list_pending_section_starts(
        self, actor_id: str, business_unit_id: Optional[str] = None
    ) -> List[PendingSectionStart]:
        """
        Approved requests whose manual next section the actor is expected to start

        Candidates are narrowed in the query: approved, a next section exists,
        the completed section hands over by hand on approval and nothing has
        been started from it yet. Only the initiator check runs per row.
        """
        section = aliased(WorkflowSection)
        next_section = aliased(WorkflowSection)
        successor = aliased(Request)

        query = (
            self.db.query(Request, section, next_section)
            .join(
                section,
                and_(
                    section.chain_id == Request.workflow_chain_id,
                    section.order == Request.current_section_order,
                ),
            )
            .join(
                next_section,
                and_(
                    next_section.chain_id == Request.workflow_chain_id,
                    next_section.order == Request.current_section_order + 1,
                ),
            )
            .filter(
                Request.status == RequestStatus.APPROVED,
                section.auto_trigger == False,  # noqa: E712
                section.trigger_condition.in_(APPROVAL_TRIGGERS),
                ~exists().where(successor.parent_request_id == Request.id),
            )
        )
        if business_unit_id is not None:
            query = query.filter(Request.business_unit_id == business_unit_id)

        pending = []
        for request, completed, upcoming in query.order_by(Request.completed_at).all():
            if not self._may_start_after(request, upcoming, actor_id):
                continue
            pending.append(
                PendingSectionStart(
                    parent_request_id=request.id,
                    workflow_chain_id=request.workflow_chain_id,
                    next_section_order=upcoming.order,
                    next_section_name=upcoming.name,
                    form_template_id=completed.target_template_id or upcoming.form_template_id,
                )
            )
        return pending

    def _check_parent(self, chain: WorkflowChain, section, parent_request_id: str, actor_id: str) -> Request:
        # Locked so concurrent starts from one parent serialize; the unique
        # parent_request_id constraint turns a lost race into InvalidStateError
        parent = self.engine.load_request(parent_request_id)
        if parent.workflow_chain_id != chain.id:
            raise ValidationError(
                f"Parent request {parent.id} belongs to a different chain"
            )
        if parent.current_section_order != section.order - 1:
            raise ValidationError(
                f"Parent request {parent.id} is at section {parent.current_section_order}, "
                f"not the section before {section.order}"
            )
        if parent.status != RequestStatus.APPROVED:
            raise InvalidStateError(
                f"Parent request {parent.id} is {parent.status.value}; the next section starts only after approval"
            )
        parent_section = chain.section_at(parent.current_section_order)
        if parent_section is not None and not trigger_satisfied_by_approval(parent_section.trigger_condition):
            raise InvalidStateError(
                f"Section {parent_section.order} hands over only {parent_section.trigger_condition.value}"
            )
        if self.engine.find_successor(parent) is not None:
            raise InvalidStateError(
                f"The section after request {parent.id} has already been started"
            )
        if self.engine.next_section_blocked(parent):
            raise InvalidStateError(
                f"Request {parent.id} has open clarifications; resolve them before starting the next section"
            )
        if not self._may_start_after(parent, section, actor_id):
            raise ForbiddenError(
                f"You are not the designated initiator of section {section.order} ('{section.name}')"
            )
        return parent

    def _may_start_after(self, parent: Request, next_section, actor_id: str) -> bool:
        if next_section.initiator_type == InitiatorType.LAST_APPROVER:
            final_step = parent.steps[-1] if parent.steps else None
            return final_step is not None and final_step.approver_id == actor_id
        roles = self.roles.get_roles_for_user(actor_id, parent.business_unit_id)
        return bool(roles & set(next_section.initiator_role_ids or []))

    def _get_chain(self, chain_id: str) -> WorkflowChain:
        normalized = normalize_id(chain_id)
        chain = None
        if normalized is not None:
            chain = self.db.query(WorkflowChain).filter(WorkflowChain.id == normalized).first()
        if chain is None:
            raise NotFoundError("WorkflowChain", chain_id)
        return chain
