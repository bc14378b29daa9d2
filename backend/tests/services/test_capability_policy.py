import uuid

import pytest

from app.models.enums import AuthLevel, Capability, RequestType
from app.services import capability_policy as policy
from app.services.capability_policy import Principal, ResourceContext

CREATOR_ID = uuid.uuid4()
TEAM_ID = uuid.uuid4()


def principal(level=AuthLevel.BASE_USER, user_id=None, cities=(), all_city=False, banned=False):
    return Principal(
        user_id=user_id or uuid.uuid4(),
        auth_level=level,
        city_ids=frozenset(cities),
        all_city_access=all_city,
        account_verified=True,
        is_banned=banned,
    )


@pytest.fixture
def context():
    return ResourceContext(
        resource_id=uuid.uuid4(),
        resource_type="event",
        creator_id=CREATOR_ID,
        city_id="berlin",
        team_member_ids=frozenset({TEAM_ID}),
    )


def test_creator_acts_directly_on_own_resource(context):
    assert policy.can_act_directly(principal(AuthLevel.CREATOR, user_id=CREATOR_ID), context)


def test_creator_below_tier_cannot_act_directly(context):
    # Demoted creators keep the edge but lose the tier
    assert not policy.can_act_directly(principal(AuthLevel.BASE_USER, user_id=CREATOR_ID), context)


def test_team_member_acts_directly_regardless_of_tier(context):
    assert policy.can_act_directly(principal(AuthLevel.BASE_USER, user_id=TEAM_ID), context)
    assert policy.can_act_directly(principal(user_id=TEAM_ID), context, Capability.ASSIGN_TEAM)


def test_team_member_cannot_delete(context):
    assert not policy.can_act_directly(principal(user_id=TEAM_ID), context, Capability.DELETE)
    assert policy.can_act_directly(principal(AuthLevel.CREATOR, user_id=CREATOR_ID), context, Capability.DELETE)


@pytest.mark.parametrize(
    "cities, all_city, expected",
    [
        (("berlin",), False, True),
        (("paris",), False, False),
        ((), True, True),
        ((), False, False),
    ],
)
def test_moderator_is_city_scoped(context, cities, all_city, expected):
    actor = principal(AuthLevel.MODERATOR, cities=cities, all_city=all_city)
    assert policy.can_act_directly(actor, context) is expected


def test_creator_tier_does_not_get_city_scope(context):
    assert not policy.can_act_directly(principal(AuthLevel.CREATOR, cities=("berlin",)), context)


def test_admin_is_global(context):
    assert policy.can_act_directly(principal(AuthLevel.ADMIN), context)
    assert policy.can_act_directly(principal(AuthLevel.ADMIN), None)


def test_missing_context_resolves_false():
    actor = principal(AuthLevel.MODERATOR, cities=("berlin",))
    assert policy.can_act_directly(actor, None) is False
    assert policy.can_act_directly(actor, ResourceContext()) is False
    no_city = ResourceContext(resource_id=uuid.uuid4(), city_id=None)
    assert policy.can_act_directly(actor, no_city) is False


def test_banned_or_anonymous_never_acts(context):
    assert not policy.can_act_directly(None, context)
    assert not policy.can_act_directly(principal(AuthLevel.ADMIN, banned=True), context)


def test_can_approve_resource_requests_follows_direct_predicate(context):
    moderator = principal(AuthLevel.MODERATOR, cities=("berlin",))
    outsider = principal(AuthLevel.MODERATOR, cities=("paris",))
    assert policy.can_approve(moderator, RequestType.TAGGING, context)
    assert policy.can_approve(moderator, RequestType.TEAM_MEMBER, context)
    assert not policy.can_approve(outsider, RequestType.TAGGING, context)


@pytest.mark.parametrize(
    "request_type",
    [RequestType.AUTH_LEVEL_CHANGE, RequestType.GLOBAL_ACCESS, RequestType.ACCOUNT_CLAIM],
)
def test_can_approve_account_requests_requires_admin(context, request_type):
    assert policy.can_approve(principal(AuthLevel.ADMIN), request_type)
    assert not policy.can_approve(principal(AuthLevel.MODERATOR, all_city=True), request_type, context)
    assert not policy.can_approve(principal(AuthLevel.CREATOR, user_id=CREATOR_ID), request_type, context)


def test_super_admin_is_protected_from_removal():
    assert policy.is_protected_from_removal(AuthLevel.SUPER_ADMIN)
    assert not policy.is_protected_from_removal(AuthLevel.ADMIN)


def test_ban_scope():
    assert policy.can_ban_users(principal(AuthLevel.ADMIN), frozenset())
    assert policy.can_ban_users(principal(AuthLevel.MODERATOR, cities=("berlin",)), frozenset({"berlin"}))
    assert not policy.can_ban_users(principal(AuthLevel.MODERATOR, cities=("berlin",)), frozenset({"paris"}))
    assert not policy.can_ban_users(principal(AuthLevel.CREATOR), frozenset({"berlin"}))


def test_direct_level_grant_ceiling():
    admin = principal(AuthLevel.ADMIN)
    assert policy.can_grant_level_directly(admin, AuthLevel.MODERATOR)
    assert policy.can_grant_level_directly(admin, AuthLevel.ADMIN)
    assert not policy.can_grant_level_directly(admin, AuthLevel.SUPER_ADMIN)
    assert policy.can_grant_level_directly(principal(AuthLevel.SUPER_ADMIN), AuthLevel.SUPER_ADMIN)
    assert not policy.can_grant_level_directly(principal(AuthLevel.MODERATOR), AuthLevel.CREATOR)


def test_flat_tier_checks():
    assert policy.can_create_events(AuthLevel.CREATOR)
    assert not policy.can_create_events(AuthLevel.BASE_USER)
    assert policy.can_request_tagging(AuthLevel.BASE_USER)
    assert policy.can_update_user_permissions(AuthLevel.ADMIN)
    assert not policy.can_update_user_permissions(AuthLevel.MODERATOR)
    # Out of range levels clamp rather than raise
    assert policy.can_update_user_permissions(99)
    assert not policy.can_create_events(None)
