import uuid
from typing import Optional

from sqlalchemy import String, ForeignKey, UniqueConstraint, Index, Enum
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, CreatedAtMixin
from app.db.types import GUID
from app.models.enums import ResourceType, MembershipRelation


class Resource(CreatedAtMixin, Base):
    """An archived event, or a section/video/session/workshop that belongs to one."""
    __tablename__ = "resources"

    resource_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    resource_type: Mapped[ResourceType] = mapped_column(Enum(ResourceType, native_enum=False), nullable=False)
    # Sections and videos inherit ownership and city from their parent event.
    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(as_uuid=True), ForeignKey("resources.resource_id", ondelete="CASCADE"), nullable=True
    )
    city_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class ResourceMembership(CreatedAtMixin, Base):
    """Ownership/team edge. Source of truth for creator and team checks."""
    __tablename__ = "resource_memberships"
    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", "user_id", "relation", name="uq_resource_membership"),
        Index("ix_resource_memberships_resource", "resource_id", "relation"),
    )

    membership_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    resource_type: Mapped[ResourceType] = mapped_column(Enum(ResourceType, native_enum=False), nullable=False)
    resource_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("resources.resource_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    relation: Mapped[MembershipRelation] = mapped_column(Enum(MembershipRelation, native_enum=False), nullable=False)


class RoleTag(CreatedAtMixin, Base):
    """A user tagged with a role (Organizer, DJ, Winner, ...) on a resource."""
    __tablename__ = "role_tags"
    __table_args__ = (
        UniqueConstraint("resource_id", "user_id", "role", name="uq_role_tag"),
    )

    tag_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    resource_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("resources.resource_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)
