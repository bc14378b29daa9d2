import enum


class AuthLevel(enum.IntEnum):
    """Ordinal capability tier; a higher tier subsumes every lower one."""
    BASE_USER = 0
    CREATOR = 1
    MODERATOR = 2
    ADMIN = 3
    SUPER_ADMIN = 4

    @classmethod
    def coerce(cls, value) -> "AuthLevel":
        try:
            level = int(value)
        except (TypeError, ValueError):
            return cls.BASE_USER
        if level < cls.BASE_USER:
            return cls.BASE_USER
        if level > cls.SUPER_ADMIN:
            return cls.SUPER_ADMIN
        return cls(level)


class RequestType(str, enum.Enum):
    TAGGING = "TAGGING"
    TEAM_MEMBER = "TEAM_MEMBER"
    AUTH_LEVEL_CHANGE = "AUTH_LEVEL_CHANGE"
    GLOBAL_ACCESS = "GLOBAL_ACCESS"
    ACCOUNT_CLAIM = "ACCOUNT_CLAIM"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class ResourceType(str, enum.Enum):
    EVENT = "event"
    SECTION = "section"
    VIDEO = "video"
    SESSION = "session"
    WORKSHOP = "workshop"


class MembershipRelation(str, enum.Enum):
    CREATOR = "creator"
    TEAM_MEMBER = "team_member"


class Capability(str, enum.Enum):
    TAG = "TAG"
    ASSIGN_TEAM = "ASSIGN_TEAM"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class NotificationType(str, enum.Enum):
    INCOMING_REQUEST = "INCOMING_REQUEST"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_DENIED = "REQUEST_DENIED"
    TEAM_MEMBER_ADDED = "TEAM_MEMBER_ADDED"
    AUTH_LEVEL_CHANGED = "AUTH_LEVEL_CHANGED"
