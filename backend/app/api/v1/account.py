import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.database import get_db
from app.api.dependencies import get_current_identity, http_error
from app.core.exceptions import RequestEngineError
from app.services.principal_service import Identity
from app.services.user_deletion_service import UserDeletionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["account"])


@router.delete("/account", status_code=200)
async def delete_my_account(
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Delete the current user's account.
    """
    try:
        await UserDeletionService.delete_user_account(session, identity.user_id, identity)
        return {"message": "Account deleted successfully"}
    except RequestEngineError as e:
        raise http_error(e)
    except Exception:
        logger.exception(f"Account deletion failed for {identity.user_id}")
        raise HTTPException(status_code=500, detail="Internal server error during account deletion")
