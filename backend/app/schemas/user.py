from typing import Optional, List
from datetime import datetime
import uuid
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator


class UserBase(BaseModel):
    display_name: Optional[str] = None
    username: str


class UserRead(UserBase):
    user_id: uuid.UUID
    auth_level: int
    instagram_handle: Optional[str] = None
    is_claimed: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("auth_level")
    def serialize_level(self, level: int) -> int:
        return int(level)


class UserAdminRead(UserRead):
    """
    admin-only fields
    """
    email: Optional[str] = None
    account_verified: bool
    all_city_access: bool
    city_ids: List[str] = []
    is_banned: bool
    banned_reason: Optional[str] = None

    @field_validator("city_ids", mode="before")
    @classmethod
    def sort_cities(cls, v):
        return sorted(v or [])


class BanUserRequest(BaseModel):
    banned: bool
    reason: Optional[str] = None


class CityAssignmentUpdate(BaseModel):
    city_ids: List[str]
    all_city_access: Optional[bool] = None


class UserListResponse(BaseModel):
    items: List[UserAdminRead]
    total: int
