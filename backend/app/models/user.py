from sqlalchemy import Column, String, Boolean, Text, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import Base, utc_now
from app.db.types import GUID, AuthLevelType
from app.models.enums import AuthLevel
import uuid


class User(Base):
    __tablename__ = "users"

    user_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    # Ghost profiles have no login, so email stays empty until claimed.
    email = Column(String(255), unique=True, nullable=True)
    username = Column(String(100), unique=True, nullable=False)
    display_name = Column(String(255))
    instagram_handle = Column(String(100), unique=True, nullable=True)
    auth_level = Column(AuthLevelType(), default=AuthLevel.BASE_USER, nullable=False)
    all_city_access = Column(Boolean, default=False, nullable=False)
    account_verified = Column(Boolean, default=False, nullable=False)
    is_claimed = Column(Boolean, default=True, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    banned_reason = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utc_now, nullable=False)

    city_assignments = relationship(
        "UserCityAssignment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def city_ids(self) -> frozenset:
        return frozenset(a.city_id for a in self.city_assignments)

    def is_admin(self) -> bool:
        return self.auth_level >= AuthLevel.ADMIN

    def is_super_admin(self) -> bool:
        return self.auth_level >= AuthLevel.SUPER_ADMIN

    def is_ghost(self) -> bool:
        return not self.is_claimed


class UserCityAssignment(Base):
    """City for which a user holds scoped moderator/creator rights."""
    __tablename__ = "user_city_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "city_id", name="uq_user_city_assignment"),
    )

    assignment_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    city_id = Column(String(100), nullable=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utc_now, nullable=False)
