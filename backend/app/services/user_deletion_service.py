import logging
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, delete

from app.core.exceptions import ForbiddenError, NotFoundError
from app.models.request import RequestApproval
from app.models.user import User
from app.services import capability_policy as policy
from app.services.principal_service import Identity, PrincipalService

logger = logging.getLogger(__name__)


class UserDeletionService:
    @staticmethod
    async def delete_user_account(
        session: AsyncSession,
        user_id: UUID,
        identity: Identity
    ) -> None:
        """
        Account deletion.

        1. Self-deletion, or deletion by an ADMIN
        2. SUPER_ADMIN accounts cannot be deleted by anyone
        3. Decisions the user made are kept, with the approver anonymized
        4. Hard deletes the user; tags, memberships, sent requests and
           notifications go with it through ON DELETE CASCADE
        """
        _, principal = await PrincipalService.load(session, identity)
        if principal.user_id != user_id and not policy.can_update_user_permissions(principal.auth_level):
            raise ForbiddenError("Can only delete own account")

        target = await session.get(User, user_id)
        if target is None:
            raise NotFoundError("User not found")
        if policy.is_protected_from_removal(target.auth_level):
            raise ForbiddenError("Super admin accounts cannot be deleted")

        # Anonymize decisions
        await session.execute(
            update(RequestApproval)
            .where(RequestApproval.approver_id == user_id)
            .values(approver_id=None)
        )

        await session.execute(
            delete(User).where(User.user_id == user_id)
        )

        await session.commit()
        logger.info(f"User {user_id} deleted by {principal.user_id}")
