import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_identity, http_error
from app.core.exceptions import RequestEngineError
from app.db.database import get_db
from app.schemas.notification import NotificationCountResponse, NotificationListResponse
from app.services.notification_service import NotificationService
from app.services.principal_service import Identity

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    is_old: Optional[bool] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    items = await NotificationService.list_notifications(session, identity.user_id, limit=limit, is_old=is_old)
    unread = await NotificationService.count_new(session, identity.user_id)
    return NotificationListResponse(items=items, unread=unread)


@router.get("/count", response_model=NotificationCountResponse)
async def count_new_notifications(
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    return NotificationCountResponse(unread=await NotificationService.count_new(session, identity.user_id))


@router.post("/read-all", response_model=NotificationCountResponse)
async def mark_all_read(
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    await NotificationService.mark_all_as_old(session, identity.user_id)
    return NotificationCountResponse(unread=0)


@router.post("/{notification_id}/read", status_code=204)
async def mark_read(
    notification_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        await NotificationService.mark_as_old(session, identity.user_id, notification_id)
    except RequestEngineError as e:
        raise http_error(e)
