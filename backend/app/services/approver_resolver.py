"""
Approver resolution.

Computes who may act on a pending request, for notification fan-out and for
display. The result is advisory: approve/deny re-check the policy at decision
time and never consult this set.
"""
from typing import Optional, Set
from uuid import UUID

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import AuthLevel, RequestType
from app.models.user import User, UserCityAssignment
from app.repositories.resource_repository import ResourceRepository

CITY_SCOPED_TYPES = (RequestType.TAGGING, RequestType.TEAM_MEMBER)


class ApproverResolver:
    @staticmethod
    async def resolve_approvers(
        session: AsyncSession,
        request_type: RequestType,
        resource_id: Optional[UUID] = None,
    ) -> Set[UUID]:
        approvers: Set[UUID] = set()

        context = None
        if request_type in CITY_SCOPED_TYPES and resource_id is not None:
            context = await ResourceRepository.get_context(session, resource_id)

        if context is not None:
            if context.creator_id is not None:
                approvers.add(context.creator_id)
            approvers.update(context.team_member_ids)

            city_clauses = [User.all_city_access.is_(True)]
            if context.city_id:
                city_clauses.append(
                    User.user_id.in_(
                        select(UserCityAssignment.user_id).where(
                            UserCityAssignment.city_id == context.city_id
                        )
                    )
                )
            stmt = select(User.user_id).where(
                User.auth_level >= AuthLevel.MODERATOR,
                User.is_banned.is_(False),
                or_(*city_clauses),
            )
            approvers.update((await session.execute(stmt)).scalars().all())

        admins = select(User.user_id).where(
            User.auth_level >= AuthLevel.ADMIN,
            User.is_banned.is_(False),
        )
        approvers.update((await session.execute(admins)).scalars().all())
        return approvers
