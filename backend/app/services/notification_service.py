"""
Notification emission and the recipient's inbox.

Emission is best effort: a failure to notify is logged and swallowed so it can
never undo the request state change that triggered it.
"""
import logging
from typing import Iterable, List, Optional, Protocol
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.enums import NotificationType, RequestType
from app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationEmitter(Protocol):
    async def emit(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        related_request_type: Optional[RequestType] = None,
        related_request_id: Optional[UUID] = None,
    ) -> None:
        ...


class DatabaseNotificationEmitter:
    """Writes notifications as rows in the caller's session (caller commits)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def emit(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        related_request_type: Optional[RequestType] = None,
        related_request_id: Optional[UUID] = None,
    ) -> None:
        self.session.add(
            Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                related_request_type=related_request_type,
                related_request_id=related_request_id,
            )
        )


class NotificationService:
    @staticmethod
    async def notify(
        session: AsyncSession,
        emitter: NotificationEmitter,
        recipients: Iterable[UUID],
        type: NotificationType,
        title: str,
        message: str,
        related_request_type: Optional[RequestType] = None,
        related_request_id: Optional[UUID] = None,
    ) -> int:
        """Emit to every recipient and commit. Returns how many were sent."""
        sent = 0
        for user_id in recipients:
            try:
                await emitter.emit(
                    user_id, type, title, message, related_request_type, related_request_id
                )
                sent += 1
            except Exception as e:
                logger.warning(f"Failed to notify {user_id} about {related_request_id}: {e}")
        try:
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.warning(f"Failed to store notifications for request {related_request_id}: {e}")
            return 0
        return sent

    @staticmethod
    async def list_notifications(
        session: AsyncSession,
        user_id: UUID,
        limit: Optional[int] = None,
        is_old: Optional[bool] = None,
    ) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if is_old is not None:
            stmt = stmt.where(Notification.is_old.is_(is_old))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit or settings.NOTIFICATION_PAGE_SIZE)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def mark_as_old(session: AsyncSession, user_id: UUID, notification_id: UUID) -> None:
        """Only the recipient may mark their notification read."""
        stmt = (
            update(Notification)
            .where(
                Notification.notification_id == notification_id,
                Notification.user_id == user_id,
            )
            .values(is_old=True)
        )
        result = await session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Notification not found")
        await session.commit()

    @staticmethod
    async def mark_all_as_old(session: AsyncSession, user_id: UUID) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_old.is_(False))
            .values(is_old=True)
        )
        result = await session.execute(stmt)
        await session.commit()
        return result.rowcount or 0

    @staticmethod
    async def count_new(session: AsyncSession, user_id: UUID) -> int:
        stmt = select(func.count(Notification.notification_id)).where(
            Notification.user_id == user_id,
            Notification.is_old.is_(False),
        )
        return (await session.scalar(stmt)) or 0
