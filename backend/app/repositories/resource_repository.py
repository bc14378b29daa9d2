from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import MembershipRelation, ResourceType
from app.models.resource import Resource, ResourceMembership
from app.services.capability_policy import ResourceContext

CHILD_RESOURCE_TYPES = (ResourceType.SECTION, ResourceType.VIDEO)


class ResourceRepository:
    @staticmethod
    async def get_by_id(session: AsyncSession, resource_id: UUID) -> Optional[Resource]:
        return await session.get(Resource, resource_id)

    @staticmethod
    async def get_owner(session: AsyncSession, resource: Resource) -> Resource:
        """Sections and videos are owned through their parent event."""
        if resource.resource_type in CHILD_RESOURCE_TYPES and resource.parent_id is not None:
            parent = await session.get(Resource, resource.parent_id)
            if parent is not None:
                return parent
        return resource

    @staticmethod
    async def get_member_ids(
        session: AsyncSession,
        resource_id: UUID,
        relation: MembershipRelation,
    ) -> List[UUID]:
        stmt = select(ResourceMembership.user_id).where(
            ResourceMembership.resource_id == resource_id,
            ResourceMembership.relation == relation,
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_context(session: AsyncSession, resource_id: Optional[UUID]) -> Optional[ResourceContext]:
        """Build the policy context for a resource, or None if it does not exist."""
        if resource_id is None:
            return None
        resource = await ResourceRepository.get_by_id(session, resource_id)
        if resource is None:
            return None
        owner = await ResourceRepository.get_owner(session, resource)

        creators = await ResourceRepository.get_member_ids(session, owner.resource_id, MembershipRelation.CREATOR)
        team = await ResourceRepository.get_member_ids(session, owner.resource_id, MembershipRelation.TEAM_MEMBER)

        return ResourceContext(
            resource_id=resource.resource_id,
            resource_type=resource.resource_type.value,
            creator_id=creators[0] if creators else None,
            city_id=resource.city_id or owner.city_id,
            team_member_ids=frozenset(team),
        )
