import logging
from typing import Iterable, List, Optional, Tuple
import uuid
from sqlalchemy import select, or_, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenError, InvalidRequestError, NotFoundError
from app.models.user import User, UserCityAssignment
from app.services import capability_policy as policy
from app.services.principal_service import Identity, PrincipalService

logger = logging.getLogger(__name__)


class UserService:
    @staticmethod
    async def get_users(
        session: AsyncSession,
        skip: int = 0,
        limit: int = 50,
        search_query: Optional[str] = None
    ) -> Tuple[List[User], int]:
        """
        Get paginated users with optional search.
        Returns (users, total_count).
        """
        query = select(User)

        if search_query:
            term = f"%{search_query}%"
            query = query.where(
                or_(
                    User.display_name.ilike(term),
                    User.username.ilike(term),
                    User.email.ilike(term),
                    User.instagram_handle.ilike(term)
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = await session.scalar(count_query)

        query = query.offset(skip).limit(limit).order_by(User.created_at.desc())

        result = await session.execute(query)
        users = result.scalars().all()

        return list(users), (total or 0)

    @staticmethod
    async def set_ban(
        session: AsyncSession,
        identity: Optional[Identity],
        user_id: uuid.UUID,
        banned: bool,
        reason: Optional[str] = None,
    ) -> User:
        """Ban or unban a user. SUPER_ADMIN accounts are immune."""
        _, principal = await PrincipalService.load(session, identity)
        if principal.user_id == user_id:
            raise InvalidRequestError("You cannot ban yourself")

        target = await PrincipalService.get_user(session, user_id)
        if target is None:
            raise NotFoundError("User not found")
        if policy.is_protected_from_removal(target.auth_level):
            raise ForbiddenError("Super admins cannot be banned")
        if not policy.can_ban_users(principal, target.city_ids):
            raise ForbiddenError("You do not have permission to ban this user")

        target.is_banned = banned
        target.banned_reason = reason if banned else None
        await session.commit()
        logger.info(f"User {user_id} {'banned' if banned else 'unbanned'} by {principal.user_id}")
        return target

    @staticmethod
    async def set_city_assignments(
        session: AsyncSession,
        identity: Optional[Identity],
        user_id: uuid.UUID,
        city_ids: Iterable[str],
        all_city_access: Optional[bool] = None,
    ) -> User:
        """Replace a user's city scope. ADMIN only."""
        _, principal = await PrincipalService.load(session, identity)
        if not policy.can_update_user_permissions(principal.auth_level):
            raise ForbiddenError()

        target = await PrincipalService.get_user(session, user_id)
        if target is None:
            raise NotFoundError("User not found")

        wanted = {c.strip() for c in city_ids if c and c.strip()}
        await session.execute(
            delete(UserCityAssignment).where(UserCityAssignment.user_id == user_id)
        )
        for city_id in sorted(wanted):
            session.add(UserCityAssignment(user_id=user_id, city_id=city_id))
        if all_city_access is not None:
            target.all_city_access = all_city_access
        await session.commit()
        logger.info(f"City scope of {user_id} set to {sorted(wanted)} by {principal.user_id}")

        return await PrincipalService.get_user(session, user_id)
