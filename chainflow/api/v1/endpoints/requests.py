"""
Request endpoints
Start and edit section requests, read their history and apply approval actions
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from chainflow.api.deps import (
    get_approval_engine,
    get_current_actor_id,
    get_request_service,
)
from chainflow.models.request import RequestStatus
from chainflow.schemas.request import (
    ApprovePayload,
    ClarificationPayload,
    ClarificationResponse,
    CommentPayload,
    HistoryEntryResponse,
    PendingSectionStart,
    ReasonPayload,
    RequestDetail,
    RequestDraftUpdate,
    RequestStart,
    RequestSummary,
    ResubmitPayload,
    StepReasonPayload,
    SubmitPayload,
)
from chainflow.services.approval_engine import ApprovalEngine
from chainflow.services.request_service import RequestService

router = APIRouter()


@router.post("", response_model=RequestDetail, status_code=status.HTTP_201_CREATED)
def start_request(
    payload: RequestStart,
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    """
    Start a section's request

    Section 0 starts a chain execution. A later section needs either the
    approved request of the previous section (``parent_request_id``) or a
    ``skip_reason``. With ``submit`` the draft goes straight into review.
    """
    request = service.start_request(
        chain_id=payload.workflow_chain_id,
        section_order=payload.section_order,
        actor_id=actor_id,
        data=payload.data,
        skip_reason=payload.skip_reason,
        parent_request_id=payload.parent_request_id,
        organization_id=payload.organization_id,
        submit=payload.submit,
    )
    return RequestDetail.from_request(request)


@router.get("/mine", response_model=List[RequestSummary])
def list_my_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    requests = service.list_requests_for_initiator(actor_id, status=status_filter)
    return [RequestSummary.from_request(r) for r in requests]


@router.get("/pending-sections", response_model=List[PendingSectionStart])
def list_pending_section_starts(
    business_unit_id: Optional[UUID] = Query(None, description="Limit to one business unit"),
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    """Completed sections whose next section is waiting for the caller to start it"""
    return service.list_pending_section_starts(
        actor_id, str(business_unit_id) if business_unit_id else None
    )


@router.get("/{request_id}", response_model=RequestDetail)
def get_request(
    request_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    return RequestDetail.from_request(service.get_request(str(request_id)))


@router.put("/{request_id}", response_model=RequestDetail)
def update_draft(
    request_id: UUID,
    payload: RequestDraftUpdate,
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    request = service.update_draft(str(request_id), actor_id, payload.data)
    return RequestDetail.from_request(request)


@router.get("/{request_id}/chain", response_model=List[RequestSummary])
def get_request_chain(
    request_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    """Every request of this chain execution, in section order"""
    return [RequestSummary.from_request(r) for r in service.get_request_chain(str(request_id))]


@router.get("/{request_id}/history", response_model=List[HistoryEntryResponse])
def get_history(
    request_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    return engine.ledger.list_for_request(str(request_id))


@router.get("/{request_id}/clarifications", response_model=List[ClarificationResponse])
def list_clarifications(
    request_id: UUID,
    open_only: bool = Query(False, description="Only unresolved clarifications"),
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    request = service.get_request(str(request_id))
    clarifications = service.engine.clarifications
    if open_only:
        return clarifications.list_open(request.id)
    return clarifications.list_for_request(request.id)


# Approval actions


@router.post("/{request_id}/submit", response_model=RequestDetail)
def submit_request(
    request_id: UUID,
    payload: Optional[SubmitPayload] = None,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    data = payload.data if payload else None
    return RequestDetail.from_request(engine.submit(str(request_id), actor_id, data=data))


@router.post("/{request_id}/approve", response_model=RequestDetail)
def approve_request(
    request_id: UUID,
    payload: Optional[ApprovePayload] = None,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    payload = payload or ApprovePayload()
    request = engine.approve(
        str(request_id), actor_id, payload.comments, step_number=payload.step_number
    )
    return RequestDetail.from_request(request)


@router.post("/{request_id}/reject", response_model=RequestDetail)
def reject_request(
    request_id: UUID,
    payload: StepReasonPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    request = engine.reject(
        str(request_id), actor_id, payload.reason, step_number=payload.step_number
    )
    return RequestDetail.from_request(request)


@router.post("/{request_id}/send-back", response_model=RequestDetail)
def send_back_request(
    request_id: UUID,
    payload: StepReasonPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Return the request to its initiator for revision"""
    request = engine.send_back(
        str(request_id), actor_id, payload.reason, step_number=payload.step_number
    )
    return RequestDetail.from_request(request)


@router.post("/{request_id}/resubmit", response_model=RequestDetail)
def resubmit_request(
    request_id: UUID,
    payload: Optional[ResubmitPayload] = None,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    payload = payload or ResubmitPayload()
    request = engine.resubmit(str(request_id), actor_id, data=payload.data, comments=payload.comments)
    return RequestDetail.from_request(request)


@router.post(
    "/{request_id}/clarifications",
    response_model=ClarificationResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_clarification(
    request_id: UUID,
    payload: ClarificationPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Ask the approvers who already passed this request a question"""
    return engine.request_clarification(str(request_id), actor_id, payload.question)


@router.post(
    "/{request_id}/ask-previous-section",
    response_model=ClarificationResponse,
    status_code=status.HTTP_201_CREATED,
)
def ask_previous_section(
    request_id: UUID,
    payload: ClarificationPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    return engine.ask_previous_section(str(request_id), actor_id, payload.question)


@router.post("/{request_id}/cancel", response_model=RequestDetail)
def cancel_request(
    request_id: UUID,
    payload: ReasonPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    return RequestDetail.from_request(engine.cancel(str(request_id), actor_id, payload.reason))


@router.post(
    "/{request_id}/comments",
    response_model=HistoryEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    request_id: UUID,
    payload: CommentPayload,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    return engine.add_comment(str(request_id), actor_id, payload.comment)
