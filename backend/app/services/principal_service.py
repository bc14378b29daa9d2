import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotAuthenticatedError
from app.models.user import User
from app.services.capability_policy import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """What the session provider hands us for the caller.

    ``auth_level`` is only the provider's claim; decisions use the level
    stored on the user row at the time of the call.
    """
    user_id: UUID
    auth_level: int = 0
    account_verified: bool = False


class PrincipalService:
    @staticmethod
    async def get_user(session: AsyncSession, user_id: UUID) -> Optional[User]:
        stmt = (
            select(User)
            .where(User.user_id == user_id)
            .options(selectinload(User.city_assignments))
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def snapshot(user: User) -> Principal:
        return Principal(
            user_id=user.user_id,
            auth_level=user.auth_level,
            city_ids=user.city_ids,
            all_city_access=bool(user.all_city_access),
            account_verified=bool(user.account_verified),
            is_banned=bool(user.is_banned),
        )

    @staticmethod
    async def load(session: AsyncSession, identity: Optional[Identity]) -> Tuple[User, Principal]:
        """Resolve the caller to a fresh user row and policy snapshot."""
        if identity is None or identity.user_id is None:
            raise NotAuthenticatedError()
        user = await PrincipalService.get_user(session, identity.user_id)
        if user is None:
            raise NotAuthenticatedError("User not found")
        if int(identity.auth_level) != int(user.auth_level):
            logger.debug(
                f"Ignoring stale level claim {identity.auth_level} for {user.user_id}; "
                f"stored level is {int(user.auth_level)}"
            )
        return user, PrincipalService.snapshot(user)
