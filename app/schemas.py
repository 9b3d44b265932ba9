"""
Pydantic schemas for request and response data validation.
Shared by the gallery API routes and the admin gallery client.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Literal, Optional, List

OwnerType = Literal["project", "post"]


class Owner(BaseModel):
    """
    The entity a gallery belongs to.
    A draft owner has not been created yet, so nothing can be persisted for it.
    """
    owner_type: OwnerType = "project"
    owner_id: int
    is_draft: bool = False


class GalleryEntry(BaseModel):
    """
    Response schema for a persisted gallery image.
    Used by GET /api/gallery and returned by create/update endpoints.
    """
    id: int
    owner_type: OwnerType
    owner_id: int
    image_url: str
    caption: Optional[str] = None
    display_order: Optional[int] = None
    is_feature: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True  # Enable conversion from SQLAlchemy models
    )


class GalleryEntryCreate(BaseModel):
    """
    Request schema for POST /api/gallery.
    display_order is assigned as max + 1 when omitted.
    """
    owner_type: OwnerType = "project"
    owner_id: int
    image_url: str = Field(min_length=1)
    caption: Optional[str] = None
    display_order: Optional[int] = None


class GalleryEntryUpdate(BaseModel):
    """
    Partial update for PATCH /api/gallery/{id}.
    Only fields that are explicitly sent are applied.
    """
    caption: Optional[str] = None
    display_order: Optional[int] = None


class PendingImage(BaseModel):
    """An uploaded image that has not been saved to the gallery yet."""
    url: str
    caption: str = ""
    display_order: int


class FileUploadResponse(BaseModel):
    url: str
    public_id: Optional[str] = None
    session_id: str


class CommitRequest(BaseModel):
    """
    Request schema for POST /api/files/commit.
    When urls is omitted every file of the session is committed.
    """
    session_id: str = Field(min_length=1)
    urls: Optional[List[str]] = None


class CommitResponse(BaseModel):
    session_id: str
    committed_urls: List[str]


class CleanupRequest(BaseModel):
    """
    Request schema for POST /api/files/cleanup.
    Either a session_id (session-wide cleanup) or a file_url (single file) is required.
    """
    session_id: Optional[str] = None
    file_url: Optional[str] = None
    preserve_urls: List[str] = []

    @field_validator('preserve_urls')
    @classmethod
    def strip_empty_urls(cls, v):
        return [url for url in v if url]


class CleanupResponse(BaseModel):
    success: bool
    deleted: List[str] = []
