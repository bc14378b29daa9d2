from typing import Optional
import uuid

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_identity, http_error, require_admin
from app.core.exceptions import RequestEngineError
from app.db.database import get_db
from app.models.enums import RequestStatus, RequestType
from app.schemas.requests import (
    CreateRequestResponse,
    RequestListResponse,
    RequestPayload,
    RequestRead,
    RequestStatsResponse,
    ReviewRequest,
    ReviewResponse,
)
from app.services.moderation_service import ModerationService
from app.services.principal_service import Identity
from app.services.request_service import RequestService

router = APIRouter(prefix="/api/v1/requests", tags=["requests"])


@router.post("", response_model=CreateRequestResponse)
async def create_request(
    payload: RequestPayload = Body(...),
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Apply directly when allowed, otherwise file a pending request."""
    try:
        result = await RequestService.create_request(session, identity, payload)
    except RequestEngineError as e:
        raise http_error(e)
    return CreateRequestResponse(
        outcome=result.outcome,
        message=result.message,
        request=RequestRead.model_validate(result.request) if result.request is not None else None,
    )


@router.get("/incoming", response_model=RequestListResponse)
async def incoming_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    request_type: Optional[RequestType] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Pending requests the caller may approve or deny"""
    try:
        items, total = await ModerationService.incoming_requests(
            session, identity, request_type=request_type, skip=skip, limit=limit
        )
    except RequestEngineError as e:
        raise http_error(e)
    return RequestListResponse(items=items, total=total)


@router.get("/outgoing", response_model=RequestListResponse)
async def outgoing_requests(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: Optional[RequestStatus] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        items, total = await ModerationService.outgoing_requests(
            session, identity, status=status, skip=skip, limit=limit
        )
    except RequestEngineError as e:
        raise http_error(e)
    return RequestListResponse(items=items, total=total)


@router.get("/stats", response_model=RequestStatsResponse, dependencies=[Depends(require_admin)])
async def get_request_stats(session: AsyncSession = Depends(get_db)):
    return await ModerationService.get_stats(session)


@router.get("/{request_id}", response_model=RequestRead)
async def get_request(
    request_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        return await RequestService.get_request(session, identity, request_id)
    except RequestEngineError as e:
        raise http_error(e)


@router.post("/{request_id}/approve", response_model=ReviewResponse)
async def approve_request(
    request_id: uuid.UUID,
    review: Optional[ReviewRequest] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        request = await RequestService.approve(
            session, identity, request_id, message=review.message if review else None
        )
    except RequestEngineError as e:
        raise http_error(e)
    return ReviewResponse(request_id=request_id, status=request.status, message="Request approved")


@router.post("/{request_id}/deny", response_model=ReviewResponse)
async def deny_request(
    request_id: uuid.UUID,
    review: Optional[ReviewRequest] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        request = await RequestService.deny(
            session, identity, request_id, message=review.message if review else None
        )
    except RequestEngineError as e:
        raise http_error(e)
    return ReviewResponse(request_id=request_id, status=request.status, message="Request denied")


@router.post("/{request_id}/cancel", response_model=ReviewResponse)
async def cancel_request(
    request_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        request = await RequestService.cancel(session, identity, request_id)
    except RequestEngineError as e:
        raise http_error(e)
    return ReviewResponse(request_id=request_id, status=request.status, message="Request cancelled")


@router.post("/{request_id}/retry-merge", response_model=ReviewResponse)
async def retry_account_merge(
    request_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Rerun the merge for a claim that was approved but whose merge failed"""
    try:
        await RequestService.retry_account_merge(session, identity, request_id)
    except RequestEngineError as e:
        raise http_error(e)
    return ReviewResponse(request_id=request_id, status=RequestStatus.APPROVED, message="Accounts merged")
