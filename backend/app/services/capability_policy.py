"""
Capability policy.

Pure functions that map a principal snapshot and a resource context to a yes/no
answer. Nothing here touches the database; callers build the snapshot per call
so the answer always reflects current levels, cities and memberships.

Every resource capability shares one escalation shape:

- the resource creator, if they are at least CREATOR
- a team member of the resource, unless the capability excludes team members
- a MODERATOR whose city assignments cover the resource's city
  (or who has all-city access)
- any ADMIN
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Optional
from uuid import UUID

from app.models.enums import AuthLevel, Capability, RequestType


@dataclass(frozen=True)
class Principal:
    """Per-call snapshot of the acting user."""
    user_id: UUID
    auth_level: AuthLevel = AuthLevel.BASE_USER
    city_ids: FrozenSet[str] = field(default_factory=frozenset)
    all_city_access: bool = False
    account_verified: bool = False
    is_banned: bool = False


@dataclass(frozen=True)
class ResourceContext:
    """What the resource collaborator knows about a resource."""
    resource_id: Optional[UUID] = None
    resource_type: Optional[str] = None
    creator_id: Optional[UUID] = None
    city_id: Optional[str] = None
    team_member_ids: FrozenSet[UUID] = field(default_factory=frozenset)


@dataclass(frozen=True)
class CapabilityRule:
    allow_team_members: bool
    creator_min: AuthLevel = AuthLevel.CREATOR
    city_scoped_min: AuthLevel = AuthLevel.MODERATOR
    global_min: AuthLevel = AuthLevel.ADMIN


CAPABILITY_RULES = {
    Capability.TAG: CapabilityRule(allow_team_members=True),
    Capability.ASSIGN_TEAM: CapabilityRule(allow_team_members=True),
    Capability.UPDATE: CapabilityRule(allow_team_members=True),
    Capability.DELETE: CapabilityRule(allow_team_members=False),
}

RESOURCE_REQUEST_CAPABILITY = {
    RequestType.TAGGING: Capability.TAG,
    RequestType.TEAM_MEMBER: Capability.ASSIGN_TEAM,
}


def _level(principal: Optional[Principal]) -> AuthLevel:
    if principal is None:
        return AuthLevel.BASE_USER
    return AuthLevel.coerce(principal.auth_level)


def covers_city(principal: Principal, city_id: Optional[str]) -> bool:
    """True if the principal's city scope includes ``city_id``."""
    if principal.all_city_access:
        return True
    if not city_id:
        return False
    return city_id in (principal.city_ids or frozenset())


def can_act_directly(
    principal: Optional[Principal],
    context: Optional[ResourceContext],
    capability: Capability = Capability.TAG,
) -> bool:
    if principal is None or principal.is_banned:
        return False
    rule = CAPABILITY_RULES.get(capability)
    if rule is None:
        return False

    level = _level(principal)
    if level >= rule.global_min:
        return True
    if context is None or context.resource_id is None:
        return False

    if (
        context.creator_id is not None
        and context.creator_id == principal.user_id
        and level >= rule.creator_min
    ):
        return True
    if rule.allow_team_members and principal.user_id in (context.team_member_ids or frozenset()):
        return True
    if level >= rule.city_scoped_min and covers_city(principal, context.city_id):
        return True
    return False


def can_approve(
    principal: Optional[Principal],
    request_type: RequestType,
    context: Optional[ResourceContext] = None,
) -> bool:
    if principal is None or principal.is_banned:
        return False
    capability = RESOURCE_REQUEST_CAPABILITY.get(request_type)
    if capability is not None:
        return can_act_directly(principal, context, capability)
    if request_type in (
        RequestType.AUTH_LEVEL_CHANGE,
        RequestType.GLOBAL_ACCESS,
        RequestType.ACCOUNT_CLAIM,
    ):
        return _level(principal) >= AuthLevel.ADMIN
    return False


def is_protected_from_removal(auth_level) -> bool:
    """SUPER_ADMIN accounts cannot be banned or deleted by anyone."""
    return AuthLevel.coerce(auth_level) >= AuthLevel.SUPER_ADMIN


# Flat tier checks

def can_create_events(auth_level) -> bool:
    return AuthLevel.coerce(auth_level) >= AuthLevel.CREATOR


def can_request_tagging(auth_level) -> bool:
    return AuthLevel.coerce(auth_level) >= AuthLevel.BASE_USER


def can_update_user_permissions(auth_level) -> bool:
    return AuthLevel.coerce(auth_level) >= AuthLevel.ADMIN


def can_ban_users(principal: Optional[Principal], target_city_ids: FrozenSet[str]) -> bool:
    """ADMINs ban anyone; MODERATORs only users who share one of their cities."""
    if principal is None:
        return False
    level = _level(principal)
    if level >= AuthLevel.ADMIN:
        return True
    if level >= AuthLevel.MODERATOR:
        if principal.all_city_access:
            return True
        return bool((principal.city_ids or frozenset()) & (target_city_ids or frozenset()))
    return False


def can_grant_level_directly(principal: Optional[Principal], requested_level) -> bool:
    """An ADMIN may grant up to their own tier; only SUPER_ADMIN may mint another SUPER_ADMIN."""
    if principal is None or principal.is_banned:
        return False
    level = _level(principal)
    requested = AuthLevel.coerce(requested_level)
    if level < AuthLevel.ADMIN:
        return False
    if requested >= AuthLevel.SUPER_ADMIN:
        return level >= AuthLevel.SUPER_ADMIN
    return requested <= level
