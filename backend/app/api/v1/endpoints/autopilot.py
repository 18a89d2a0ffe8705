"""
Autopilot API Endpoints

Proposal creation, acknowledgement and execution.
Caller identity arrives in the X-User-Id header.
"""

from typing import Any, Optional, Union

from fastapi import APIRouter, Body, Header, HTTPException, Query

from app.schemas.proposal import (
    AcknowledgeRequest,
    AcknowledgeResult,
    ExecutionResult,
    Proposal,
    ProposalBlocked,
    ProposalCreated,
    ProposalList,
    ProposalStatus,
)
from app.schemas.safety import CircuitState
from app.services.base import (
    ExecutionFailure,
    LifecycleConflict,
    ProposalNotFound,
    ServiceError,
    ValidationError,
)
from app.services.proposals import get_proposal_service
from app.services.safety import get_safety_gateway

router = APIRouter()


def _http_error(e: ServiceError) -> HTTPException:
    """Map lifecycle errors onto HTTP status codes."""
    if isinstance(e, ProposalNotFound):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, LifecycleConflict):
        return HTTPException(status_code=409, detail={"error": e.message, "status": e.status})
    if isinstance(e, ExecutionFailure):
        return HTTPException(status_code=502, detail=e.message)
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)


@router.post("/propose", response_model=Union[ProposalCreated, ProposalBlocked])
async def propose_trade(
    draft: dict[str, Any] = Body(...),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """
    Propose a trade.

    Runs the full risk pipeline:
    1. Threat and blind-spot kill-switches
    2. Trading frequency and standard risk limits
    3. IV gate for volatility strategies

    Blocked proposals return 200 with `blocked: true` and are not stored.
    """
    service = get_proposal_service()
    return await service.propose_trade(x_user_id, draft)


@router.post("/proposals/{proposal_id}/acknowledge", response_model=AcknowledgeResult)
async def acknowledge_proposal(
    proposal_id: str,
    request: AcknowledgeRequest,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """Approve or reject a pending proposal."""
    service = get_proposal_service()
    try:
        return await service.acknowledge_proposal(x_user_id, proposal_id, request.decision)
    except ServiceError as e:
        raise _http_error(e)


@router.post("/proposals/{proposal_id}/execute", response_model=ExecutionResult)
async def execute_proposal(
    proposal_id: str,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """Send an approved proposal to the broker. Failures are not retried."""
    service = get_proposal_service()
    try:
        return await service.execute_proposal(x_user_id, proposal_id)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/proposals", response_model=ProposalList)
async def list_proposals(
    status: Optional[ProposalStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    """List the caller's proposals, newest first."""
    service = get_proposal_service()
    try:
        return await service.list_proposals(x_user_id, status, limit, offset)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/proposals/pending", response_model=list[Proposal])
async def get_pending_proposals(x_user_id: str = Header(..., alias="X-User-Id")):
    """Pending proposals that have not yet expired."""
    service = get_proposal_service()
    return await service.get_pending_proposals(x_user_id)


@router.post("/proposals/expire")
async def expire_stale_proposals():
    """Expire overdue pending proposals against the server clock. Intended for an external scheduler."""
    service = get_proposal_service()
    expired = await service.expire_stale_proposals()
    return {"expired": expired}


@router.get("/proposals/{proposal_id}", response_model=Proposal)
async def get_proposal(
    proposal_id: str,
    x_user_id: str = Header(..., alias="X-User-Id"),
):
    service = get_proposal_service()
    try:
        return await service.get_proposal(x_user_id, proposal_id)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/circuits", response_model=list[CircuitState])
async def get_circuits():
    """Circuit breaker state of each safety dependency."""
    return get_safety_gateway().circuit_states()
