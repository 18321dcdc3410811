"""
API v1 Router Configuration
Aggregates all API endpoints for version 1
"""

from fastapi import APIRouter

from chainflow.api.v1.endpoints import approvals, chains, requests

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(chains.router, prefix="/chains", tags=["Workflow Chains"])
api_router.include_router(requests.router, prefix="/requests", tags=["Requests"])
api_router.include_router(approvals.router, tags=["Approvals"])
