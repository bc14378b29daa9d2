"""
Request models.

One table holds every request; each ``RequestType`` maps to its own subclass
(single-table inheritance) so the variant-specific columns only exist on the
class that uses them. The partial unique index on ``dedup_key`` is what keeps
a second PENDING request for the same intent from being inserted.
"""
import uuid
from typing import Optional

from sqlalchemy import String, Integer, Boolean, Text, ForeignKey, Index, Enum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base, CreatedAtMixin, TimestampMixin
from app.db.types import GUID
from app.models.enums import RequestType, RequestStatus, ResourceType

PENDING_ONLY = text("status = 'PENDING'")


class Request(TimestampMixin, Base):
    __tablename__ = "requests"
    __table_args__ = (
        Index(
            "uq_requests_pending_dedup",
            "dedup_key",
            unique=True,
            postgresql_where=PENDING_ONLY,
            sqlite_where=PENDING_ONLY,
        ),
        Index("ix_requests_status_type", "status", "type"),
    )

    request_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type: Mapped[RequestType] = mapped_column(Enum(RequestType, native_enum=False), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, native_enum=False), default=RequestStatus.PENDING, nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True
    )
    resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(as_uuid=True), nullable=True, index=True)
    resource_type: Mapped[Optional[ResourceType]] = mapped_column(
        Enum(ResourceType, native_enum=False), nullable=True
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dedup_key: Mapped[str] = mapped_column(String(400), nullable=False)

    sender = relationship("User", foreign_keys=[sender_id], lazy="raise")
    target_user = relationship("User", foreign_keys=[target_user_id], lazy="raise")

    __mapper_args__ = {
        "polymorphic_on": "type",
        "polymorphic_abstract": True,
        # Load every variant column up front; async sessions cannot lazy load.
        "with_polymorphic": "*",
    }

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class TaggingRequest(Request):
    role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    __mapper_args__ = {"polymorphic_identity": RequestType.TAGGING}


class TeamMemberRequest(Request):
    __mapper_args__ = {"polymorphic_identity": RequestType.TEAM_MEMBER}


class AuthLevelChangeRequest(Request):
    requested_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": RequestType.AUTH_LEVEL_CHANGE}


class GlobalAccessRequest(Request):
    __mapper_args__ = {"polymorphic_identity": RequestType.GLOBAL_ACCESS}


class AccountClaimRequest(Request):
    instagram_handle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tag_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    wipe_relationships: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    __mapper_args__ = {"polymorphic_identity": RequestType.ACCOUNT_CLAIM}


REQUEST_CLASSES = {
    RequestType.TAGGING: TaggingRequest,
    RequestType.TEAM_MEMBER: TeamMemberRequest,
    RequestType.AUTH_LEVEL_CHANGE: AuthLevelChangeRequest,
    RequestType.GLOBAL_ACCESS: GlobalAccessRequest,
    RequestType.ACCOUNT_CLAIM: AccountClaimRequest,
}


class RequestApproval(CreatedAtMixin, Base):
    """Immutable record of an approve/deny decision.

    ``request_id`` is not a foreign key: an approved account claim deletes its
    own request row and the decision must outlive it.
    """
    __tablename__ = "request_approvals"
    __table_args__ = (
        Index("ix_request_approvals_request", "request_type", "request_id"),
    )

    approval_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_type: Mapped[RequestType] = mapped_column(Enum(RequestType, native_enum=False), nullable=False)
    request_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), nullable=False)
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
