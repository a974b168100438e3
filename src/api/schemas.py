"""Pydantic schemas for API request/response validation.

This module defines the data models used for validating API requests
and serializing responses.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Schema for password sign-in."""

    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=1024)

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "editor@example.org", "password": "s3cret"}}
    )


class UserResponse(BaseModel):
    """Schema for the signed-in account."""

    id: str
    email: str
    roles: list[str] = Field(default_factory=list)


class SessionResponse(BaseModel):
    """Schema for a new session."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class CarouselSlotResponse(BaseModel):
    """One position on the loop track; cards link to ``slug``."""

    slot: int
    id: str
    slug: str | None = None
    titulo: str | None = None
    capa_url: str | None = None


class CarouselFeedResponse(BaseModel):
    """Schema for the public carousel feed.

    The client renders ``track`` and starts the cursor at ``start_index``.
    """

    table: str
    per_view: int = Field(..., ge=1, le=3)
    item_count: int
    safe_length: int
    start_index: int
    offset_percent: float
    autoplay: bool
    autoplay_interval_ms: int
    transition_ms: int
    show_arrows: bool
    touch_threshold: int
    drag_threshold: int
    track: list[CarouselSlotResponse] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "table": "projetos",
                "per_view": 3,
                "item_count": 5,
                "safe_length": 10,
                "start_index": 6,
                "offset_percent": 200.0,
                "autoplay": True,
                "autoplay_interval_ms": 2500,
                "transition_ms": 700,
                "show_arrows": True,
                "touch_threshold": 60,
                "drag_threshold": 80,
                "track": [
                    {
                        "slot": 0,
                        "id": "p-1",
                        "slug": "horta-comunitaria",
                        "titulo": "Horta comunitária",
                    }
                ],
            }
        }
    )


class RecordListResponse(BaseModel):
    """Schema for a list of table rows."""

    records: list[dict[str, Any]]
    total: int


class RecordWrite(BaseModel):
    """Column values for an insert or update."""

    values: dict[str, Any] = Field(..., min_length=1)


class ImageUploadRequest(BaseModel):
    """Schema for an image upload from an admin form."""

    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., description="MIME type, e.g. image/png")
    image_base64: str = Field(..., description="Base64-encoded image data")
    folder: str = Field("", max_length=200, description="Folder inside the bucket")
    fixed_name: str | None = Field(
        None, description="Stable file name to overwrite, e.g. \"logo\""
    )


class UploadResponse(BaseModel):
    """Schema for a stored image and its thumbnail."""

    path: str
    public_url: str
    thumbnail_path: str
    thumbnail_url: str
    content_type: str


class SignedUrlResponse(BaseModel):
    """Temporary URL for a private object."""

    url: str
    expires_in: int


class ProvisionUserRequest(BaseModel):
    """Schema for creating or updating a back-office account."""

    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=6, max_length=1024)
    roles: list[str] = Field(default_factory=list)
    linked_record_id: str | None = Field(
        None, description="Team member (equipe) record linked to the account"
    )


class ProvisionUserResponse(BaseModel):
    """Schema for a provisioning result."""

    ok: bool = True
    user_id: str
    created: bool
    roles: list[str]


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: str
    code: str
    details: dict[str, Any] | None = None


class NewsletterSubscribeRequest(BaseModel):
    """Schema for the public newsletter form."""

    email: str = Field("", max_length=320)
    name: str | None = Field(None, max_length=200)


class SubscriberResponse(BaseModel):
    id: str
    email: str
    name: str | None = None
    status: str


class NewsletterSubscribeResponse(BaseModel):
    ok: bool = True
    subscriber: SubscriberResponse


class ContactRequest(BaseModel):
    """Schema for the public contact form. Every field is required."""

    name: str = Field("", max_length=200)
    email: str = Field("", max_length=320)
    subject: str = Field("", max_length=300)
    message: str = Field("", max_length=10_000)


class OkResponse(BaseModel):
    ok: bool = True


class TeamMemberPageResponse(BaseModel):
    """Public profile of a team member with portfolio and published articles."""

    member: dict[str, Any]
    portfolio: list[dict[str, Any]] = Field(default_factory=list)
    posts: list[dict[str, Any]] = Field(default_factory=list)
