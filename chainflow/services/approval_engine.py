"""
Approval Step Engine

Per-request approval state machine:

    DRAFT -> SUBMITTED -> IN_REVIEW <-> NEEDS_REVISION -> APPROVED | REJECTED | CANCELLED

Every action runs as one unit of work: the request row is re-read under
``SELECT ... FOR UPDATE`` (where the dialect supports it), preconditions are
checked against that fresh state, the request row is touched so its
``version_id`` is compared-and-swapped on flush, and the state change, its
history entry and any spawned next-section request commit together. A
concurrent action that loses the race surfaces as ``InvalidStateError``.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from chainflow.core.config import settings
from chainflow.core.exceptions import (
    ChainflowError,
    ConfigurationError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chainflow.core.metrics import record_engine_action, record_section_spawned
from chainflow.models.base import normalize_id, utcnow
from chainflow.models.request import (
    ClarificationScope,
    HistoryAction,
    Request,
    RequestApprovalStep,
    RequestHistory,
    RequestStatus,
    StepStatus,
)
from chainflow.models.workflow import InitiatorType, TriggerCondition, WorkflowSection
from chainflow.services.clarification_service import ClarificationLedger
from chainflow.services.form_validator import FormValidator, RequiredFieldsFormValidator
from chainflow.services.history_ledger import HistoryLedger
from chainflow.services.role_provider import RoleProvider

logger = logging.getLogger(__name__)

# Conditions an approval of the final step satisfies
APPROVAL_TRIGGERS = frozenset(
    {TriggerCondition.WHEN_APPROVED, TriggerCondition.WHEN_COMPLETED}
)


def trigger_satisfied_by_approval(condition: Optional[TriggerCondition]) -> bool:
    return condition is None or condition in APPROVAL_TRIGGERS


class ApprovalEngine:
    """Applies approver and initiator actions to requests"""

    def __init__(
        self,
        db: Session,
        role_provider: RoleProvider,
        form_validator: Optional[FormValidator] = None,
        clarifications_block_next_section: Optional[bool] = None,
    ):
        self.db = db
        self.roles = role_provider
        self.forms = form_validator or RequiredFieldsFormValidator()
        self.ledger = HistoryLedger(db)
        self.clarifications = ClarificationLedger(db, self.ledger)
        if clarifications_block_next_section is None:
            clarifications_block_next_section = settings.CLARIFICATIONS_BLOCK_NEXT_SECTION
        self.clarifications_block_next_section = clarifications_block_next_section

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def unit_of_work(self, action: str, subject_id: Optional[str] = None, actor_id: Optional[str] = None):
        """
        Run one engine action as a single transaction

        Commits on success. Typed errors roll back and propagate; stale
        versions and uniqueness violations become ``InvalidStateError``;
        any other storage error rolls back and propagates unchanged.
        """
        try:
            yield
            self.db.commit()
        except ChainflowError as e:
            self.db.rollback()
            record_engine_action(action, "rejected")
            logger.warning(
                f"{action} on {subject_id} by {actor_id} rejected: {e.error_code} - {e.message}"
            )
            raise
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            record_engine_action(action, "conflict")
            logger.warning(
                f"{action} on {subject_id} by {actor_id} lost a concurrent update: {e}"
            )
            raise InvalidStateError(
                "The request was changed by another action; refresh and try again",
                details={"request_id": subject_id, "action": action},
            ) from e
        except SQLAlchemyError:
            self.db.rollback()
            record_engine_action(action, "error")
            logger.error(f"{action} on {subject_id} failed with a storage error", exc_info=True)
            raise

        record_engine_action(action, "success")
        logger.info(f"{action} on {subject_id} by {actor_id} succeeded")

    def load_request(self, request_id: str) -> Request:
        """Re-read a request and its steps under lock, discarding cached state"""
        normalized = normalize_id(request_id)
        request = None
        if normalized is not None:
            request = (
                self.db.query(Request)
                .filter(Request.id == normalized)
                .populate_existing()
                .with_for_update()
                .first()
            )
        if request is None:
            raise NotFoundError("Request", request_id)

        (
            self.db.query(RequestApprovalStep)
            .filter(RequestApprovalStep.request_id == request.id)
            .populate_existing()
            .with_for_update()
            .all()
        )
        return request

    # ------------------------------------------------------------------
    # Initiator actions
    # ------------------------------------------------------------------

    def submit(
        self,
        request_id: str,
        actor_id: str,
        data: Optional[Dict[str, Any]] = None,
        skip_reason: Optional[str] = None,
    ) -> Request:
        """Submit a draft into review; step 1 becomes PENDING"""
        with self.unit_of_work("submit", request_id, actor_id):
            request = self.load_request(request_id)
            self.submit_draft(request, actor_id, data=data, skip_reason=skip_reason)
        return request

    def submit_draft(
        self,
        request: Request,
        actor_id: str,
        data: Optional[Dict[str, Any]] = None,
        skip_reason: Optional[str] = None,
        validate_form: bool = True,
    ) -> RequestHistory:
        """
        Submit an already-loaded draft inside an open unit of work

        Raises:
            InvalidStateError: If the request is not a draft
            ForbiddenError: If the actor is not the request's initiator
            ValidationError: On a missing skip reason or invalid form data
            ConfigurationError: If a step's approver role has no members
        """
        self._ensure_not_terminal(request)
        if request.status != RequestStatus.DRAFT:
            raise InvalidStateError(
                f"Request {request.id} is {request.status.value}; only drafts can be submitted"
            )
        self.claim_or_check_initiator(request, actor_id)

        if data is not None:
            request.data = data
        if skip_reason is not None and skip_reason.strip():
            request.skip_reason = skip_reason.strip()
        self._check_skip_reason(request)

        if validate_form:
            self._validate_form(request.form_template_id, request.data)

        section = self._section(request)
        if not section.steps:
            raise ConfigurationError(
                f"Section {section.order} ('{section.name}') has no approval steps",
                [f"Section {section.order} has no approval steps"],
            )
        problems = [
            f"Step {step.step_number} approver role '{step.approver_role_id}' has no members"
            for step in section.steps
            if not self.roles.has_members(step.approver_role_id, request.business_unit_id)
        ]
        if problems:
            raise ConfigurationError(
                f"Section {section.order} ('{section.name}') has steps nobody can approve",
                problems,
            )

        for step in section.steps:
            request.steps.append(
                RequestApprovalStep(
                    step_number=step.step_number,
                    approver_role_id=step.approver_role_id,
                    status=StepStatus.PENDING if step.step_number == 1 else StepStatus.WAITING,
                )
            )

        # SUBMITTED is transient: the request goes straight into review
        request.status = RequestStatus.IN_REVIEW
        request.submitted_at = utcnow()
        self.touch(request)

        metadata = {"transitions": [RequestStatus.SUBMITTED.value, RequestStatus.IN_REVIEW.value]}
        if request.skip_reason:
            metadata["skip_reason"] = request.skip_reason
        return self.ledger.append(
            request,
            actor_id,
            HistoryAction.SUBMIT,
            comments=request.skip_reason,
            from_status=RequestStatus.DRAFT,
            to_status=RequestStatus.IN_REVIEW,
            to_step_number=1,
            metadata=metadata,
        )

    def resubmit(
        self,
        request_id: str,
        actor_id: str,
        data: Optional[Dict[str, Any]] = None,
        comments: Optional[str] = None,
    ) -> Request:
        """
        Return a sent-back request to review

        Review resumes at the step that sent it back; steps approved before
        it stay approved.
        """
        with self.unit_of_work("resubmit", request_id, actor_id):
            request = self.load_request(request_id)
            self._ensure_not_terminal(request)
            if request.status != RequestStatus.NEEDS_REVISION:
                raise InvalidStateError(
                    f"Request {request.id} is {request.status.value}; only requests sent back can be resubmitted"
                )
            if request.initiator_id != actor_id:
                raise ForbiddenError("Only the initiator can resubmit a request")

            if data is not None:
                request.data = data
            self._validate_form(request.form_template_id, request.data)

            step = next(
                (s for s in request.steps if s.status == StepStatus.REQUESTED_REVISION), None
            )
            if step is None:
                raise InvalidStateError(
                    f"Request {request.id} has no step awaiting revision"
                )
            step.status = StepStatus.PENDING
            step.approver_id = None
            step.actioned_at = None

            request.status = RequestStatus.IN_REVIEW
            self.touch(request)
            self.ledger.append(
                request,
                actor_id,
                HistoryAction.RESUBMIT,
                comments=comments,
                from_status=RequestStatus.NEEDS_REVISION,
                to_status=RequestStatus.IN_REVIEW,
                from_step_number=step.step_number,
                to_step_number=step.step_number,
            )
        return request

    # ------------------------------------------------------------------
    # Approver actions
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: str,
        actor_id: str,
        comments: Optional[str] = None,
        step_number: Optional[int] = None,
    ) -> Request:
        """
        Approve the current step

        Advances to the next step, or completes the section. Completing the
        final step makes the request APPROVED and, when the section's trigger
        is satisfied and auto-triggered, creates the next section's request in
        the same transaction.

        ``step_number`` names the step the approver means to act on; if another
        action moved the request on, the call fails with ``InvalidStateError``.
        """
        with self.unit_of_work("approve", request_id, actor_id):
            request = self.load_request(request_id)
            step = self._current_step_for_approver(request, actor_id, step_number)

            now = utcnow()
            step.status = StepStatus.APPROVED
            step.approver_id = actor_id
            step.actioned_at = now
            self.touch(request)

            next_step = request.step(step.step_number + 1)
            if next_step is not None:
                next_step.status = StepStatus.PENDING
                self.ledger.append(
                    request,
                    actor_id,
                    HistoryAction.APPROVE,
                    comments=comments,
                    from_status=RequestStatus.IN_REVIEW,
                    to_status=RequestStatus.IN_REVIEW,
                    from_step_number=step.step_number,
                    to_step_number=next_step.step_number,
                )
            else:
                request.status = RequestStatus.APPROVED
                request.completed_at = now
                successor = self._complete_section(request, actor_id)
                metadata = {"section_completed": request.current_section_order}
                if successor is not None:
                    metadata["spawned_request_id"] = successor.id
                self.ledger.append(
                    request,
                    actor_id,
                    HistoryAction.APPROVE,
                    comments=comments,
                    from_status=RequestStatus.IN_REVIEW,
                    to_status=RequestStatus.APPROVED,
                    from_step_number=step.step_number,
                    metadata=metadata,
                )
        return request

    def reject(
        self, request_id: str, actor_id: str, reason: str, step_number: Optional[int] = None
    ) -> Request:
        """Reject the request outright; nothing is spawned"""
        with self.unit_of_work("reject", request_id, actor_id):
            reason = self._require_text(reason, "A rejection reason is required")
            request = self.load_request(request_id)
            step = self._current_step_for_approver(request, actor_id, step_number)

            now = utcnow()
            step.approver_id = actor_id
            step.actioned_at = now
            request.status = RequestStatus.REJECTED
            request.completed_at = now
            self.touch(request)
            self.ledger.append(
                request,
                actor_id,
                HistoryAction.REJECT,
                comments=reason,
                from_status=RequestStatus.IN_REVIEW,
                to_status=RequestStatus.REJECTED,
                from_step_number=step.step_number,
            )
        return request

    def send_back(
        self, request_id: str, actor_id: str, reason: str, step_number: Optional[int] = None
    ) -> Request:
        """Return the request to its initiator for revision"""
        with self.unit_of_work("send_back", request_id, actor_id):
            reason = self._require_text(reason, "A reason is required to send a request back")
            request = self.load_request(request_id)
            step = self._current_step_for_approver(request, actor_id, step_number)

            step.status = StepStatus.REQUESTED_REVISION
            step.approver_id = actor_id
            step.actioned_at = utcnow()
            request.status = RequestStatus.NEEDS_REVISION
            self.touch(request)
            self.ledger.append(
                request,
                actor_id,
                HistoryAction.SEND_BACK,
                comments=reason,
                from_status=RequestStatus.IN_REVIEW,
                to_status=RequestStatus.NEEDS_REVISION,
                from_step_number=step.step_number,
                to_step_number=step.step_number,
            )
        return request

    # ------------------------------------------------------------------
    # Clarifications
    # ------------------------------------------------------------------

    def request_clarification(self, request_id: str, actor_id: str, question: str) -> RequestHistory:
        """
        Ask the approvers who already passed this request a question

        Allowed for those approvers and for the current step's eligible
        approvers. Request and step status are left untouched.
        """
        with self.unit_of_work("request_clarification", request_id, actor_id):
            question = self._require_text(question, "A clarification question is required")
            request = self.load_request(request_id)
            self._ensure_not_terminal(request)

            passed = [s for s in request.steps if s.status == StepStatus.APPROVED]
            passed_approvers = _unique(s.approver_id for s in passed)
            current = request.current_step
            is_current_approver = current is not None and self.roles.can_act_on_step(
                actor_id, request.business_unit_id, current
            )
            if actor_id not in passed_approvers and not is_current_approver:
                raise ForbiddenError(
                    "Only approvers who passed this request or the current approver can request clarification"
                )

            self.touch(request)
            entry = self.clarifications.open(
                request,
                actor_id,
                question,
                ClarificationScope.CURRENT_SECTION_APPROVERS,
                addressed_to=passed_approvers,
                step_number=current.step_number if current else None,
            )
        return entry

    def ask_previous_section(self, request_id: str, actor_id: str, question: str) -> RequestHistory:
        """Ask the participants of the parent request a question"""
        with self.unit_of_work("ask_previous_section", request_id, actor_id):
            question = self._require_text(question, "A question is required")
            request = self.load_request(request_id)
            self._ensure_not_terminal(request)
            if request.current_section_order == 0:
                raise InvalidStateError("The first section has no previous section to ask")
            parent = request.parent
            if parent is None:
                raise InvalidStateError(
                    f"Request {request.id} was started mid-chain and has no previous section request"
                )
            if not self._is_participant(request, actor_id):
                raise ForbiddenError("Only participants of this section can ask the previous section")

            addressed_to = _unique(
                [parent.initiator_id] + [s.approver_id for s in parent.steps]
            )
            current = request.current_step
            self.touch(request)
            entry = self.clarifications.open(
                request,
                actor_id,
                question,
                ClarificationScope.PREVIOUS_SECTION_PARTICIPANTS,
                addressed_to=addressed_to,
                target_request_id=parent.id,
                step_number=current.step_number if current else None,
            )
        return entry

    def resolve_clarification(self, entry_id: str, resolver_id: str) -> RequestHistory:
        """
        Resolve a clarification; resolving it again is a no-op

        Never changes the request's status. When open clarifications hold
        back the next section, resolving the last one releases it.
        """
        entry = self.clarifications.get(entry_id)
        if entry.resolved_at is not None:
            record_engine_action("resolve_clarification", "noop")
            return entry

        try:
            with self.unit_of_work("resolve_clarification", entry.request_id, resolver_id):
                request = self.load_request(entry.request_id)
                entry = self.clarifications.get(entry_id)
                self.db.refresh(entry)
                # Terminal rows stay as they ended; the history sequence
                # constraint still lets only one resolver write
                if not request.is_terminal:
                    self.touch(request)
                entry, resolved = self.clarifications.resolve(entry, request, resolver_id)
                if resolved:
                    self._release_deferred_section(request)
        except InvalidStateError:
            # A concurrent resolve of the same entry counts as success
            entry = self.clarifications.get(entry_id)
            self.db.refresh(entry)
            if entry.resolved_at is None:
                raise
        return entry

    # ------------------------------------------------------------------
    # Cancel / comment
    # ------------------------------------------------------------------

    def cancel(self, request_id: str, actor_id: str, reason: str) -> Request:
        """Cancel from any non-terminal status; other requests of the chain are untouched"""
        with self.unit_of_work("cancel", request_id, actor_id):
            reason = self._require_text(reason, "A cancellation reason is required")
            request = self.load_request(request_id)
            self._ensure_not_terminal(request)

            roles = self.roles.get_roles_for_user(actor_id, request.business_unit_id)
            section = self._section(request)
            step_roles = {step.approver_role_id for step in section.steps}
            may_cancel = (
                request.initiator_id == actor_id
                or bool(roles & step_roles)
                or (request.initiator_id is None and bool(roles & set(request.initiator_role_ids or [])))
            )
            if not may_cancel:
                raise ForbiddenError("Only the initiator or an approver of this section can cancel")

            from_status = request.status
            current = request.current_step
            request.status = RequestStatus.CANCELLED
            request.completed_at = utcnow()
            self.touch(request)
            self.ledger.append(
                request,
                actor_id,
                HistoryAction.CANCEL,
                comments=reason,
                from_status=from_status,
                to_status=RequestStatus.CANCELLED,
                from_step_number=current.step_number if current else None,
            )
        return request

    def add_comment(self, request_id: str, actor_id: str, comment: str) -> RequestHistory:
        with self.unit_of_work("add_comment", request_id, actor_id):
            comment = self._require_text(comment, "A comment cannot be empty")
            request = self.load_request(request_id)
            self._ensure_not_terminal(request)
            if not self._is_participant(request, actor_id):
                raise ForbiddenError("Only participants of this request can comment")

            current = request.current_step
            self.touch(request)
            entry = self.ledger.append(
                request,
                actor_id,
                HistoryAction.COMMENT,
                comments=comment,
                from_status=request.status,
                to_status=request.status,
                from_step_number=current.step_number if current else None,
                to_step_number=current.step_number if current else None,
            )
        return entry

    # ------------------------------------------------------------------
    # Section hand-over
    # ------------------------------------------------------------------

    def next_section_blocked(self, request: Request) -> bool:
        """True when open clarifications hold back the next section"""
        return self.clarifications_block_next_section and bool(
            self.clarifications.list_open(request.id)
        )

    def find_successor(self, request: Request) -> Optional[Request]:
        return (
            self.db.query(Request)
            .filter(Request.parent_request_id == request.id)
            .order_by(Request.created_at)
            .first()
        )

    def _complete_section(self, request: Request, last_approver_id: str) -> Optional[Request]:
        section = self._section(request)
        next_section = request.chain.section_at(section.order + 1)
        if next_section is None:
            logger.info(f"Request {request.id} completed the last section of chain {request.workflow_chain_id}")
            return None
        if not trigger_satisfied_by_approval(section.trigger_condition):
            logger.info(
                f"Section {section.order} of request {request.id} triggers on "
                f"{section.trigger_condition.value}; approval hands nothing over"
            )
            return None
        if not section.auto_trigger:
            return None
        if self.next_section_blocked(request):
            logger.info(f"Next section of request {request.id} deferred until clarifications are resolved")
            return None
        return self._spawn_next(request, section, next_section, last_approver_id)

    def _release_deferred_section(self, request: Request) -> Optional[Request]:
        if not self.clarifications_block_next_section:
            return None
        if request.status != RequestStatus.APPROVED or self.next_section_blocked(request):
            return None
        if self.find_successor(request) is not None:
            return None

        final_step = request.steps[-1] if request.steps else None
        last_approver_id = final_step.approver_id if final_step else None
        return self._complete_section(request, last_approver_id)

    def _spawn_next(
        self,
        parent: Request,
        section: WorkflowSection,
        next_section: WorkflowSection,
        last_approver_id: Optional[str],
    ) -> Request:
        existing = self.find_successor(parent)
        if existing is not None:
            return existing

        if next_section.initiator_type == InitiatorType.LAST_APPROVER:
            initiator_id, initiator_role_ids = last_approver_id, None
        else:
            initiator_id, initiator_role_ids = None, list(next_section.initiator_role_ids or [])

        child = Request(
            workflow_chain_id=parent.workflow_chain_id,
            current_section_order=next_section.order,
            form_template_id=section.target_template_id or next_section.form_template_id,
            business_unit_id=parent.business_unit_id,
            organization_id=parent.organization_id,
            initiator_id=initiator_id,
            initiator_role_ids=initiator_role_ids,
            status=RequestStatus.DRAFT,
            data={},
            parent_request_id=parent.id,
            root_request_id=parent.root_request_id or parent.id,
        )
        self.db.add(child)
        self.db.flush()

        auto_submitted = False
        if next_section.auto_submit and initiator_id is not None:
            # Raised before anything is written, so the draft is left intact
            try:
                self.submit_draft(child, initiator_id, validate_form=False)
                auto_submitted = True
            except ConfigurationError as e:
                logger.warning(
                    f"Request {child.id} left as draft; auto-submit failed: {e.message} {e.problems}"
                )

        record_section_spawned(auto_submitted)
        logger.info(
            f"Spawned request {child.id} for section {next_section.order} from {parent.id} "
            f"(initiator={initiator_id or 'by role'}, auto_submitted={auto_submitted})"
        )
        return child

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _current_step_for_approver(
        self, request: Request, actor_id: str, expected_step_number: Optional[int] = None
    ) -> RequestApprovalStep:
        self._ensure_not_terminal(request)
        if request.status != RequestStatus.IN_REVIEW:
            raise InvalidStateError(
                f"Request {request.id} is {request.status.value}, not in review"
            )
        step = request.current_step
        if step is None:
            raise InvalidStateError(f"Request {request.id} has no pending step")
        if expected_step_number is not None and step.step_number != expected_step_number:
            raise InvalidStateError(
                f"Step {expected_step_number} is no longer pending; step {step.step_number} is",
                details={"pending_step": step.step_number},
            )
        if not self.roles.can_act_on_step(actor_id, request.business_unit_id, step):
            # The actor's own step was already actioned by someone else
            if any(
                s is not step
                and s.status != StepStatus.WAITING
                and self.roles.can_act_on_step(actor_id, request.business_unit_id, s)
                for s in request.steps
            ):
                raise InvalidStateError(
                    f"The step you can act on is no longer pending; step {step.step_number} is",
                    details={"pending_step": step.step_number},
                )
            raise ForbiddenError(
                f"You are not an eligible approver for step {step.step_number} "
                f"(role '{step.approver_role_id}')"
            )
        return step

    def claim_or_check_initiator(self, request: Request, actor_id: str) -> None:
        """Check the actor is the initiator, binding a role-resolved draft to them"""
        if request.initiator_id is not None:
            if request.initiator_id != actor_id:
                raise ForbiddenError("Only the initiator can change this request")
            return

        roles = self.roles.get_roles_for_user(actor_id, request.business_unit_id)
        if not roles & set(request.initiator_role_ids or []):
            raise ForbiddenError("You do not hold a role allowed to start this section")
        request.initiator_id = actor_id

    def _is_participant(self, request: Request, actor_id: str) -> bool:
        if request.initiator_id == actor_id:
            return True
        if actor_id in {s.approver_id for s in request.steps}:
            return True
        roles = self.roles.get_roles_for_user(actor_id, request.business_unit_id)
        if request.initiator_id is None and roles & set(request.initiator_role_ids or []):
            return True
        return any(self.roles.is_eligible_approver(role_id, step) for step in request.steps for role_id in roles)

    def _check_skip_reason(self, request: Request) -> None:
        if request.current_section_order > 0 and request.parent_request_id is None:
            if not (request.skip_reason or "").strip():
                raise ValidationError(
                    "A skip reason is required to start a chain past its first section",
                    details={"section_order": request.current_section_order},
                )

    def _validate_form(self, form_template_id: Optional[str], data: Dict[str, Any]) -> None:
        result = self.forms.validate(form_template_id, data or {})
        if not result.valid:
            raise ValidationError(
                "Form data is invalid", details={"errors": result.errors}
            )

    def _section(self, request: Request) -> WorkflowSection:
        section = request.chain.section_at(request.current_section_order)
        if section is None:
            raise ConfigurationError(
                f"Chain {request.workflow_chain_id} has no section {request.current_section_order}",
                [f"Missing section {request.current_section_order}"],
            )
        return section

    @staticmethod
    def _ensure_not_terminal(request: Request) -> None:
        if request.is_terminal:
            raise InvalidStateError(
                f"Request {request.id} is {request.status.value} and can no longer change",
                details={"status": request.status.value},
            )

    @staticmethod
    def touch(request: Request) -> None:
        # Dirties the row so the version column is checked and bumped on flush
        request.updated_at = utcnow()

    @staticmethod
    def _require_text(value: Optional[str], message: str) -> str:
        if value is None or not value.strip():
            raise ValidationError(message)
        return value.strip()


def _unique(values) -> List[str]:
    seen: Set[str] = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result
