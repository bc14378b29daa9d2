import uuid
from typing import Optional

from sqlalchemy import String, Text, Boolean, ForeignKey, Index, Enum
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, CreatedAtMixin
from app.db.types import GUID
from app.models.enums import NotificationType, RequestType


class Notification(CreatedAtMixin, Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_is_old", "user_id", "is_old"),
    )

    notification_id: Mapped[uuid.UUID] = mapped_column(GUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType, native_enum=False), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_request_type: Mapped[Optional[RequestType]] = mapped_column(
        Enum(RequestType, native_enum=False), nullable=True
    )
    related_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(as_uuid=True), nullable=True)
    is_old: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
