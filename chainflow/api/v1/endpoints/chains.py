"""
Workflow chain endpoints
Create, version, activate and archive approval chain definitions
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from chainflow.api.deps import get_chain_service, get_current_actor_id
from chainflow.schemas.workflow import (
    WorkflowChainCreate,
    WorkflowChainEdit,
    WorkflowChainResponse,
    WorkflowChainSummary,
)
from chainflow.services.chain_service import ChainDefinitionService

router = APIRouter()


@router.post("", response_model=WorkflowChainResponse, status_code=status.HTTP_201_CREATED)
def create_chain(
    chain_data: WorkflowChainCreate,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    """Create version 1 of a chain as a draft"""
    return service.create_chain(chain_data, actor_id)


@router.get("", response_model=List[WorkflowChainSummary])
def list_chains(
    business_unit_id: UUID = Query(..., description="Business unit to list chains for"),
    include_archived: bool = Query(False),
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    return service.list_chains(str(business_unit_id), include_archived=include_archived)


@router.get("/{chain_id}", response_model=WorkflowChainResponse)
def get_chain(
    chain_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    return service.get_chain(str(chain_id))


@router.get("/{chain_id}/versions", response_model=List[WorkflowChainResponse])
def list_versions(
    chain_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    """Every version of the chain's lineage, newest first"""
    return service.list_versions(str(chain_id))


@router.post(
    "/{chain_id}/versions",
    response_model=WorkflowChainResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_new_version(
    chain_id: UUID,
    edits: WorkflowChainEdit,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    """
    Copy the chain into a new draft version with the edits applied

    Rejected with 409 when in-flight requests use a section the edit would
    remove or move.
    """
    return service.create_new_version(str(chain_id), edits, actor_id)


@router.post("/{chain_id}/activate", response_model=WorkflowChainResponse)
def activate_chain(
    chain_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    return service.activate_chain(str(chain_id), actor_id)


@router.post("/{chain_id}/archive", response_model=WorkflowChainResponse)
def archive_chain(
    chain_id: UUID,
    actor_id: str = Depends(get_current_actor_id),
    service: ChainDefinitionService = Depends(get_chain_service),
):
    return service.archive_chain(str(chain_id), actor_id)
