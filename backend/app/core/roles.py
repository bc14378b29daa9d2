"""Role names that can be tagged on each kind of resource."""
from app.models.enums import ResourceType

EVENT_ROLES = (
    "Organizer",
    "DJ",
    "Photographer",
    "Videographer",
    "Designer",
    "MC",
    "Team Member",
)

VIDEO_ROLE_DANCER = "Dancer"
VIDEO_ROLE_WINNER = "Winner"
SECTION_ROLE_WINNER = "Winner"

WORKSHOP_ROLES = ("ORGANIZER", "TEACHER", "TEAM_MEMBER")


def normalize_role(resource_type: ResourceType, role: str | None) -> str | None:
    """Return the canonical spelling of ``role`` for ``resource_type``, or None if invalid."""
    if not role or not role.strip():
        return None
    role = role.strip()
    lowered = role.lower()

    if resource_type in (ResourceType.EVENT, ResourceType.SESSION):
        candidates = EVENT_ROLES
    elif resource_type == ResourceType.VIDEO:
        candidates = EVENT_ROLES + (VIDEO_ROLE_DANCER, VIDEO_ROLE_WINNER)
    elif resource_type == ResourceType.SECTION:
        candidates = (SECTION_ROLE_WINNER,)
    elif resource_type == ResourceType.WORKSHOP:
        candidates = WORKSHOP_ROLES
    else:
        return None

    for candidate in candidates:
        if candidate.lower() == lowered:
            return candidate
    return None


def normalize_instagram_handle(handle: str | None) -> str:
    if not handle:
        return ""
    handle = handle.strip()
    for prefix in ("https://www.instagram.com/", "https://instagram.com/", "instagram.com/"):
        if handle.lower().startswith(prefix):
            handle = handle[len(prefix):]
    return handle.lstrip("@").strip("/").lower()
