import pytest
from sqlalchemy import func, select

from app.core.exceptions import NotFoundError
from app.models.enums import NotificationType, RequestType
from app.models.notification import Notification
from app.services.notification_service import DatabaseNotificationEmitter, NotificationService


class FlakyEmitter(DatabaseNotificationEmitter):
    """Fails for one recipient, writes the rest."""

    def __init__(self, session, fail_for):
        super().__init__(session)
        self.fail_for = fail_for

    async def emit(self, user_id, *args, **kwargs):
        if user_id == self.fail_for:
            raise TimeoutError("push gateway timeout")
        await super().emit(user_id, *args, **kwargs)


async def seed(session, users, n=1):
    emitter = DatabaseNotificationEmitter(session)
    for i in range(n):
        await NotificationService.notify(
            session, emitter, [u.user_id for u in users], NotificationType.INCOMING_REQUEST,
            "New Request", f"Request {i}", RequestType.TAGGING,
        )


@pytest.mark.asyncio
async def test_notify_writes_one_row_per_recipient(isolated_session, admin, moderator):
    sent = await NotificationService.notify(
        isolated_session,
        DatabaseNotificationEmitter(isolated_session),
        [admin.user_id, moderator.user_id],
        NotificationType.INCOMING_REQUEST,
        "New Request",
        "Somebody wants a tag",
    )
    assert sent == 2
    total = await isolated_session.scalar(select(func.count()).select_from(Notification))
    assert total == 2


@pytest.mark.asyncio
async def test_failing_recipient_does_not_block_others(isolated_session, admin, moderator):
    sent = await NotificationService.notify(
        isolated_session,
        FlakyEmitter(isolated_session, fail_for=admin.user_id),
        [admin.user_id, moderator.user_id],
        NotificationType.REQUEST_APPROVED,
        "Request Approved",
        "ok",
    )
    assert sent == 1
    [row] = (await isolated_session.execute(select(Notification))).scalars().all()
    assert row.user_id == moderator.user_id


@pytest.mark.asyncio
async def test_inbox_lists_newest_first_and_counts_unread(isolated_session, base_user, admin):
    await seed(isolated_session, [base_user], n=3)
    await seed(isolated_session, [admin])

    items = await NotificationService.list_notifications(isolated_session, base_user.user_id)
    assert len(items) == 3
    assert all(n.user_id == base_user.user_id for n in items)
    assert await NotificationService.count_new(isolated_session, base_user.user_id) == 3

    limited = await NotificationService.list_notifications(isolated_session, base_user.user_id, limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_mark_as_old_only_by_recipient(isolated_session, base_user, admin):
    await seed(isolated_session, [base_user], n=2)
    first, second = await NotificationService.list_notifications(isolated_session, base_user.user_id)

    with pytest.raises(NotFoundError):
        await NotificationService.mark_as_old(isolated_session, admin.user_id, first.notification_id)

    await NotificationService.mark_as_old(isolated_session, base_user.user_id, first.notification_id)

    assert await NotificationService.count_new(isolated_session, base_user.user_id) == 1
    unread = await NotificationService.list_notifications(isolated_session, base_user.user_id, is_old=False)
    assert [n.notification_id for n in unread] == [second.notification_id]


@pytest.mark.asyncio
async def test_mark_all_as_old(isolated_session, base_user, admin):
    await seed(isolated_session, [base_user, admin], n=2)

    changed = await NotificationService.mark_all_as_old(isolated_session, base_user.user_id)

    assert changed == 2
    assert await NotificationService.count_new(isolated_session, base_user.user_id) == 0
    assert await NotificationService.count_new(isolated_session, admin.user_id) == 2
