import pytest

from app.models.enums import AuthLevel, RequestStatus, RequestType
from app.schemas.requests import AuthLevelChangePayload, GlobalAccessPayload, TaggingPayload, TeamMemberPayload
from app.services.moderation_service import ModerationService
from app.services.request_service import RequestService


@pytest.fixture
async def queue(isolated_session, make_user, make_resource, creator, identity_of):
    """One tag request in berlin, one in paris, and a global access request."""
    berlin_event = await make_resource(creator=creator, title="Berlin Jam")
    paris_event = await make_resource(city_id="paris", title="Paris Jam")
    dancer = await make_user(name="b_girl")
    promoter = await make_user(AuthLevel.CREATOR, name="promoter")

    berlin = await RequestService.create_request(
        isolated_session, identity_of(dancer), TaggingPayload(resource_id=berlin_event.resource_id, role="DJ")
    )
    paris = await RequestService.create_request(
        isolated_session, identity_of(dancer), TeamMemberPayload(resource_id=paris_event.resource_id)
    )
    global_access = await RequestService.create_request(
        isolated_session, identity_of(promoter), GlobalAccessPayload()
    )
    return {
        "dancer": dancer,
        "berlin": berlin.request,
        "paris": paris.request,
        "global": global_access.request,
    }


@pytest.mark.asyncio
async def test_incoming_is_filtered_by_current_capability(isolated_session, moderator, admin, queue, identity_of):
    items, total = await ModerationService.incoming_requests(isolated_session, identity_of(moderator))
    assert total == 1
    assert [r.request_id for r in items] == [queue["berlin"].request_id]

    items, total = await ModerationService.incoming_requests(isolated_session, identity_of(admin))
    assert total == 3

    items, total = await ModerationService.incoming_requests(
        isolated_session, identity_of(admin), request_type=RequestType.GLOBAL_ACCESS
    )
    assert [r.request_id for r in items] == [queue["global"].request_id]


@pytest.mark.asyncio
async def test_incoming_excludes_own_requests(isolated_session, make_user, identity_of):
    admin = await make_user(AuthLevel.ADMIN, name="solo_admin")
    await RequestService.create_request(
        isolated_session,
        identity_of(admin),
        AuthLevelChangePayload(requested_level=AuthLevel.SUPER_ADMIN, message="need it"),
    )
    items, total = await ModerationService.incoming_requests(isolated_session, identity_of(admin))
    assert total == 0


@pytest.mark.asyncio
async def test_outgoing_lists_senders_requests(isolated_session, creator, queue, identity_of):
    dancer = queue["dancer"]
    await RequestService.cancel(isolated_session, identity_of(dancer), queue["paris"].request_id)

    items, total = await ModerationService.outgoing_requests(isolated_session, identity_of(dancer))
    assert total == 2

    items, total = await ModerationService.outgoing_requests(
        isolated_session, identity_of(dancer), status=RequestStatus.CANCELLED
    )
    assert [r.request_id for r in items] == [queue["paris"].request_id]


@pytest.mark.asyncio
async def test_stats(isolated_session, creator, admin, queue, identity_of):
    await RequestService.approve(isolated_session, identity_of(creator), queue["berlin"].request_id)
    await RequestService.deny(isolated_session, identity_of(admin), queue["paris"].request_id, message="no")

    stats = await ModerationService.get_stats(isolated_session)

    assert stats.pending_count == 1
    assert stats.approved_today == 1
    assert stats.denied_today == 1
    assert stats.pending_by_type == {"GLOBAL_ACCESS": 1}

    approvals = await ModerationService.get_approvals(isolated_session, queue["berlin"].request_id)
    assert [a.approved for a in approvals] == [True]


@pytest.mark.asyncio
async def test_admin_queue_pages_in_order(isolated_session, admin, queue, identity_of):
    items, total = await ModerationService.incoming_requests(isolated_session, identity_of(admin), skip=1, limit=1)
    assert total == 3
    assert [r.request_id for r in items] == [queue["paris"].request_id]

    items, total = await ModerationService.incoming_requests(isolated_session, identity_of(admin), skip=3)
    assert total == 3
    assert items == []
