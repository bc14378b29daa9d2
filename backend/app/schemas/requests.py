from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union, List, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums import RequestType, RequestStatus, ResourceType


class TaggingPayload(BaseModel):
    type: Literal[RequestType.TAGGING] = RequestType.TAGGING
    resource_id: UUID
    role: str = Field(min_length=1, max_length=50)
    message: Optional[str] = None


class TeamMemberPayload(BaseModel):
    type: Literal[RequestType.TEAM_MEMBER] = RequestType.TEAM_MEMBER
    resource_id: UUID
    message: Optional[str] = None


class AuthLevelChangePayload(BaseModel):
    type: Literal[RequestType.AUTH_LEVEL_CHANGE] = RequestType.AUTH_LEVEL_CHANGE
    target_user_id: Optional[UUID] = None  # defaults to the sender
    requested_level: int
    message: str

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message is required for authorization level change requests")
        return v.strip()


class GlobalAccessPayload(BaseModel):
    type: Literal[RequestType.GLOBAL_ACCESS] = RequestType.GLOBAL_ACCESS
    message: Optional[str] = None


class AccountClaimPayload(BaseModel):
    type: Literal[RequestType.ACCOUNT_CLAIM] = RequestType.ACCOUNT_CLAIM
    target_user_id: UUID
    instagram_handle: str = Field(min_length=1, max_length=100)
    tag_count: int = Field(default=0, ge=0)
    wipe_relationships: bool = False
    message: Optional[str] = None


RequestPayload = Annotated[
    Union[
        TaggingPayload,
        TeamMemberPayload,
        AuthLevelChangePayload,
        GlobalAccessPayload,
        AccountClaimPayload,
    ],
    Field(discriminator="type"),
]


class CreateOutcome(str, Enum):
    DIRECT = "DIRECT"
    CREATED = "CREATED"
    ALREADY_PENDING = "ALREADY_PENDING"


class RequestRead(BaseModel):
    request_id: UUID
    type: RequestType
    status: RequestStatus
    sender_id: UUID
    target_user_id: Optional[UUID] = None
    resource_id: Optional[UUID] = None
    resource_type: Optional[ResourceType] = None
    role: Optional[str] = None
    requested_level: Optional[int] = None
    current_level: Optional[int] = None
    instagram_handle: Optional[str] = None
    tag_count: Optional[int] = None
    wipe_relationships: Optional[bool] = None
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateRequestResponse(BaseModel):
    outcome: CreateOutcome
    message: str
    request: Optional[RequestRead] = None


class ReviewRequest(BaseModel):
    message: Optional[str] = None


class ReviewResponse(BaseModel):
    request_id: UUID
    status: RequestStatus
    message: str


class RequestListResponse(BaseModel):
    items: List[RequestRead]
    total: int


class RequestStatsResponse(BaseModel):
    pending_count: int
    approved_today: int
    denied_today: int
    pending_by_type: Dict[str, int]
