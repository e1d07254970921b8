# retouch/schemas/artifact.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .metadata import CamelModel, ImageMetadata


class ArtifactInfo(CamelModel):
    id: str = Field(..., description="32-character hex artifact id")
    session_id: str
    original_filename: str
    format: str
    width: int
    height: int
    file_size: int
    quality: Optional[int] = None
    color_space: Optional[str] = None
    bit_depth: Optional[int] = None
    metadata: ImageMetadata = Field(default_factory=ImageMetadata)
    image_url: str
    thumbnail_url: Optional[str] = None
    created_at: datetime


class UploadItemError(CamelModel):
    filename: str
    error: str


class UploadResponse(CamelModel):
    success: bool = True
    images: List[ArtifactInfo] = Field(default_factory=list)
    errors: List[UploadItemError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DeleteResponse(CamelModel):
    success: bool = True
    deleted: List[str] = Field(default_factory=list)


def image_url(session_id: str, file_id: str) -> str:
    return f"/api/image?sessionId={session_id}&id={file_id}"


def thumbnail_url(session_id: str, file_id: str) -> str:
    return f"/api/thumbnail?sessionId={session_id}&id={file_id}"
