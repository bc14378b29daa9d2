from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.api.dependencies import get_current_identity, http_error, require_admin
from app.core.exceptions import RequestEngineError
from app.db.database import get_db
from app.services.principal_service import Identity
from app.services.user_deletion_service import UserDeletionService
from app.services.user_service import UserService
from app.schemas.user import BanUserRequest, CityAssignmentUpdate, UserListResponse, UserAdminRead
import uuid

router = APIRouter(prefix="/api/v1/admin/users", tags=["admin-users"])


@router.get(
    "",
    response_model=UserListResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)]
)
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """
    List users with pagination and search.
    Requires Admin privileges.
    """
    users, total = await UserService.get_users(
        session=db,
        skip=skip,
        limit=limit,
        search_query=search
    )

    return UserListResponse(items=users, total=total)


@router.post("/{user_id}/ban", response_model=UserAdminRead)
async def set_ban(
    user_id: uuid.UUID,
    ban_request: BanUserRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Ban or unban a user.
    Admins, or moderators sharing a city with the user. Super admins are immune.
    """
    try:
        return await UserService.set_ban(db, identity, user_id, ban_request.banned, ban_request.reason)
    except RequestEngineError as e:
        raise http_error(e)


@router.put("/{user_id}/cities", response_model=UserAdminRead)
async def set_city_assignments(
    user_id: uuid.UUID,
    update_request: CityAssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        return await UserService.set_city_assignments(
            db, identity, user_id, update_request.city_ids, update_request.all_city_access
        )
    except RequestEngineError as e:
        raise http_error(e)


@router.delete("/{user_id}", status_code=status.HTTP_200_OK)
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        await UserDeletionService.delete_user_account(db, user_id, identity)
    except RequestEngineError as e:
        raise http_error(e)
    return {"message": "User deleted"}
