"""
Approver inbox and clarification resolution endpoints
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from chainflow.api.deps import get_approval_engine, get_current_actor_id, get_request_service
from chainflow.schemas.request import ClarificationResponse, RequestSummary
from chainflow.services.approval_engine import ApprovalEngine
from chainflow.services.request_service import RequestService

router = APIRouter()


@router.get("/approvals/pending", response_model=List[RequestSummary])
def list_pending_approvals(
    business_unit_id: UUID = Query(..., description="Business unit of the inbox"),
    actor_id: str = Depends(get_current_actor_id),
    service: RequestService = Depends(get_request_service),
):
    """Requests whose current step the caller can approve"""
    requests = service.list_pending_approvals(actor_id, str(business_unit_id))
    return [RequestSummary.from_request(r) for r in requests]


@router.post("/clarifications/{entry_id}/resolve", response_model=ClarificationResponse)
def resolve_clarification(
    entry_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    engine: ApprovalEngine = Depends(get_approval_engine),
):
    """Resolve a clarification; resolving it again returns it unchanged"""
    return engine.resolve_clarification(str(entry_id), actor_id)
