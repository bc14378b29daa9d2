import uuid

import pytest

from app.models.enums import AuthLevel, RequestType, ResourceType
from app.services.approver_resolver import ApproverResolver


@pytest.mark.asyncio
async def test_tagging_approvers_include_owner_team_city_moderators_and_admins(
    isolated_session, make_user, make_resource, creator, moderator, admin
):
    teammate = await make_user(name="teammate")
    far_moderator = await make_user(AuthLevel.MODERATOR, cities=["paris"], name="faraway")
    global_moderator = await make_user(AuthLevel.MODERATOR, all_city_access=True, name="globalmod")
    await make_user(name="bystander")
    event = await make_resource(creator=creator, team=[teammate])

    approvers = await ApproverResolver.resolve_approvers(isolated_session, RequestType.TAGGING, event.resource_id)

    assert approvers == {
        creator.user_id,
        teammate.user_id,
        moderator.user_id,
        global_moderator.user_id,
        admin.user_id,
    }
    assert far_moderator.user_id not in approvers


@pytest.mark.asyncio
async def test_child_resource_resolves_through_parent_event(
    isolated_session, make_resource, creator, moderator, admin
):
    event = await make_resource(creator=creator)
    section = await make_resource(resource_type=ResourceType.SECTION, city_id=None, parent=event)

    approvers = await ApproverResolver.resolve_approvers(isolated_session, RequestType.TAGGING, section.resource_id)

    assert approvers == {creator.user_id, moderator.user_id, admin.user_id}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "request_type",
    [RequestType.AUTH_LEVEL_CHANGE, RequestType.GLOBAL_ACCESS, RequestType.ACCOUNT_CLAIM],
)
async def test_account_requests_go_to_admins_only(
    isolated_session, make_user, moderator, admin, super_admin, request_type
):
    banned_admin = await make_user(AuthLevel.ADMIN, name="bannedadmin")
    banned_admin.is_banned = True
    await isolated_session.commit()

    approvers = await ApproverResolver.resolve_approvers(isolated_session, request_type)

    assert approvers == {admin.user_id, super_admin.user_id}


@pytest.mark.asyncio
async def test_unknown_resource_still_yields_admins(isolated_session, admin):
    approvers = await ApproverResolver.resolve_approvers(isolated_session, RequestType.TAGGING, uuid.uuid4())
    assert approvers == {admin.user_id}
