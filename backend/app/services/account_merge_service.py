"""
Account merge for approved ACCOUNT_CLAIM requests.

The claiming account (the request sender) is folded into the ghost profile it
claimed: the ghost keeps its id and history, takes over the sender's login,
and inherits the sender's role tags, team memberships and request references.
The sender row is deleted last.

Everything happens in one transaction. On any failure the transaction is
rolled back, both users and every edge are left as they were, and
``MergeFailedError`` is raised. The claim request itself stays APPROVED; an
admin can rerun the merge with ``RequestService.retry_account_merge``.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MergeFailedError
from app.core.roles import normalize_instagram_handle
from app.models.enums import AuthLevel
from app.models.notification import Notification
from app.models.request import Request, RequestApproval
from app.models.resource import ResourceMembership, RoleTag
from app.models.user import User, UserCityAssignment

logger = logging.getLogger(__name__)


class AccountMergeService:
    @staticmethod
    async def execute_merge(
        session: AsyncSession,
        source_user_id: UUID,
        target_user_id: Optional[UUID],
        wipe_relationships: bool,
        target_instagram: Optional[str],
    ) -> User:
        """Merge ``source_user_id`` into ``target_user_id`` and delete the source."""
        try:
            source, target = await AccountMergeService._load_pair(
                session, source_user_id, target_user_id, target_instagram
            )

            await AccountMergeService._reassign_role_tags(session, source_user_id, target_user_id, wipe_relationships)
            await AccountMergeService._reassign_memberships(session, source_user_id, target_user_id)
            await AccountMergeService._reassign_city_assignments(session, source_user_id, target_user_id)
            await AccountMergeService._reassign_notifications(session, source_user_id, target_user_id)
            await AccountMergeService._reassign_request_references(session, source_user_id, target_user_id)
            await AccountMergeService._transfer_login(session, source, target)

            await session.execute(delete(User).where(User.user_id == source_user_id))
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(
                f"Account merge {source_user_id} -> {target_user_id} failed: {e}",
                exc_info=True,
            )
            raise MergeFailedError(f"Account merge failed: {e}") from e

        logger.info(f"Merged account {source_user_id} into {target_user_id}")
        merged = await session.execute(
            select(User)
            .where(User.user_id == target_user_id)
            .execution_options(populate_existing=True)
        )
        return merged.scalar_one()

    @staticmethod
    async def _load_pair(session, source_user_id, target_user_id, target_instagram):
        if target_user_id is None:
            raise ValueError("Claimed profile no longer exists")
        if source_user_id == target_user_id:
            raise ValueError("Cannot merge an account into itself")

        stmt = (
            select(User)
            .where(User.user_id.in_([source_user_id, target_user_id]))
            .execution_options(populate_existing=True)
        )
        users = {u.user_id: u for u in (await session.execute(stmt)).scalars().all()}
        source = users.get(source_user_id)
        target = users.get(target_user_id)
        if source is None:
            raise ValueError("Claiming account no longer exists")
        if target is None:
            raise ValueError("Claimed profile no longer exists")
        if target.is_claimed:
            raise ValueError("Claimed profile already belongs to another account")

        expected = normalize_instagram_handle(target_instagram)
        if not expected or normalize_instagram_handle(target.instagram_handle) != expected:
            raise ValueError("Instagram handle does not match the claimed profile")
        return source, target

    @staticmethod
    async def _reassign_role_tags(session, source_id, target_id, wipe: bool) -> None:
        if wipe:
            await session.execute(delete(RoleTag).where(RoleTag.user_id == source_id))
            return

        held = await session.execute(
            select(RoleTag.resource_id, RoleTag.role).where(RoleTag.user_id == target_id)
        )
        held = {tuple(row) for row in held.all()}
        rows = await session.execute(
            select(RoleTag.tag_id, RoleTag.resource_id, RoleTag.role).where(RoleTag.user_id == source_id)
        )
        duplicates = [tag_id for tag_id, resource_id, role in rows.all() if (resource_id, role) in held]
        if duplicates:
            await session.execute(delete(RoleTag).where(RoleTag.tag_id.in_(duplicates)))
        await session.execute(
            update(RoleTag).where(RoleTag.user_id == source_id).values(user_id=target_id)
        )

    @staticmethod
    async def _reassign_memberships(session, source_id, target_id) -> None:
        held = await session.execute(
            select(
                ResourceMembership.resource_type,
                ResourceMembership.resource_id,
                ResourceMembership.relation,
            ).where(ResourceMembership.user_id == target_id)
        )
        held = {tuple(row) for row in held.all()}
        rows = await session.execute(
            select(
                ResourceMembership.membership_id,
                ResourceMembership.resource_type,
                ResourceMembership.resource_id,
                ResourceMembership.relation,
            ).where(ResourceMembership.user_id == source_id)
        )
        duplicates = [
            membership_id
            for membership_id, resource_type, resource_id, relation in rows.all()
            if (resource_type, resource_id, relation) in held
        ]
        if duplicates:
            await session.execute(
                delete(ResourceMembership).where(ResourceMembership.membership_id.in_(duplicates))
            )
        await session.execute(
            update(ResourceMembership)
            .where(ResourceMembership.user_id == source_id)
            .values(user_id=target_id)
        )

    @staticmethod
    async def _reassign_city_assignments(session, source_id, target_id) -> None:
        held = await session.scalars(
            select(UserCityAssignment.city_id).where(UserCityAssignment.user_id == target_id)
        )
        held = set(held.all())
        await session.execute(
            delete(UserCityAssignment).where(
                UserCityAssignment.user_id == source_id,
                UserCityAssignment.city_id.in_(held),
            )
        )
        await session.execute(
            update(UserCityAssignment)
            .where(UserCityAssignment.user_id == source_id)
            .values(user_id=target_id)
        )

    @staticmethod
    async def _reassign_notifications(session, source_id, target_id) -> None:
        await session.execute(
            update(Notification).where(Notification.user_id == source_id).values(user_id=target_id)
        )

    @staticmethod
    async def _reassign_request_references(session, source_id, target_id) -> None:
        # Requests the source sent go with it, including the claim itself.
        await session.execute(
            update(Request)
            .where(Request.target_user_id == source_id)
            .values(target_user_id=target_id)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(RequestApproval)
            .where(RequestApproval.approver_id == source_id)
            .values(approver_id=target_id)
        )
        await session.execute(
            delete(Request)
            .where(Request.sender_id == source_id)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def _transfer_login(session, source: User, target: User) -> None:
        email = source.email
        verified = bool(source.account_verified) or bool(target.account_verified)
        level = max(AuthLevel.coerce(source.auth_level), AuthLevel.coerce(target.auth_level))
        all_city = bool(source.all_city_access) or bool(target.all_city_access)

        # Free the unique login columns before the target takes them.
        await session.execute(
            update(User)
            .where(User.user_id == source.user_id)
            .values(email=None, instagram_handle=None)
        )
        await session.execute(
            update(User)
            .where(User.user_id == target.user_id)
            .values(
                email=email or target.email,
                account_verified=verified,
                auth_level=level,
                all_city_access=all_city,
                is_claimed=True,
            )
        )
