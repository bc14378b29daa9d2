"""Database models package.

Ensure all model classes are imported so SQLAlchemy can register them,
avoiding lazy name resolution issues during mapper configuration.
"""

from app.models.user import User, UserCityAssignment  # noqa: F401
from app.models.resource import Resource, ResourceMembership, RoleTag  # noqa: F401
from app.models.request import (  # noqa: F401
    Request,
    TaggingRequest,
    TeamMemberRequest,
    AuthLevelChangeRequest,
    GlobalAccessRequest,
    AccountClaimRequest,
    RequestApproval,
)
from app.models.notification import Notification  # noqa: F401

__all__ = [
    "User",
    "UserCityAssignment",
    "Resource",
    "ResourceMembership",
    "RoleTag",
    "Request",
    "TaggingRequest",
    "TeamMemberRequest",
    "AuthLevelChangeRequest",
    "GlobalAccessRequest",
    "AccountClaimRequest",
    "RequestApproval",
    "Notification",
]
