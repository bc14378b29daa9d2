"""
Applies the effect behind a request: role tags, team membership, level changes
and all-city access. Used both for direct grants and on approval.

Every grant is idempotent. The unique constraints on ``role_tags`` and
``resource_memberships`` decide whether a row already exists, so two racing
grants of the same role leave exactly one row and both callers succeed.
"""
import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.models.enums import AuthLevel, MembershipRelation
from app.models.resource import ResourceMembership, RoleTag
from app.models.user import User
from app.repositories.resource_repository import ResourceRepository

logger = logging.getLogger(__name__)


class GrantService:
    @staticmethod
    async def _insert_once(session: AsyncSession, row) -> bool:
        """Insert ``row`` inside a savepoint; False if a unique constraint says it exists."""
        # Anything already pending must not ride along into the savepoint.
        await session.flush()
        try:
            async with session.begin_nested():
                session.add(row)
                await session.flush()
        except IntegrityError:
            return False
        return True

    @staticmethod
    async def tag_role(session: AsyncSession, resource_id: UUID, user_id: UUID, role: str) -> bool:
        """Tag ``user_id`` with ``role`` on a resource. Returns False if already tagged."""
        created = await GrantService._insert_once(
            session, RoleTag(resource_id=resource_id, user_id=user_id, role=role)
        )
        if created:
            logger.info(f"Tagged user {user_id} as {role} on {resource_id}")
        else:
            logger.info(f"User {user_id} already tagged as {role} on {resource_id}")
        return created

    @staticmethod
    async def add_team_member(session: AsyncSession, resource_id: UUID, user_id: UUID) -> bool:
        """Add a team member to the resource's owning event. Returns False if already a member."""
        resource = await ResourceRepository.get_by_id(session, resource_id)
        if resource is None:
            raise NotFoundError("Resource not found")
        owner = await ResourceRepository.get_owner(session, resource)
        created = await GrantService._insert_once(
            session,
            ResourceMembership(
                resource_type=owner.resource_type,
                resource_id=owner.resource_id,
                user_id=user_id,
                relation=MembershipRelation.TEAM_MEMBER,
            ),
        )
        if created:
            logger.info(f"Added user {user_id} to team of {owner.resource_id}")
        return created

    @staticmethod
    async def set_auth_level(session: AsyncSession, user_id: UUID, level: int) -> bool:
        """Raise a user's level. Returns False if they already hold it (or more)."""
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        new_level = AuthLevel.coerce(level)
        if new_level != level:
            raise InvalidRequestError("Invalid authorization level")
        if user.auth_level >= new_level:
            return False
        logger.info(f"Auth level of {user_id} changed {int(user.auth_level)} -> {int(new_level)}")
        user.auth_level = new_level
        await session.flush()
        return True

    @staticmethod
    async def grant_global_access(session: AsyncSession, user_id: UUID) -> bool:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.all_city_access:
            return False
        user.all_city_access = True
        await session.flush()
        logger.info(f"Granted all-city access to {user_id}")
        return True
