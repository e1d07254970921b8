# retouch/schemas/operations.py
from typing import List, Literal, Optional

from pydantic import Field

from .metadata import CamelModel, ImageMetadata, MetadataChange


class MetadataResponse(CamelModel):
    success: bool = True
    metadata: ImageMetadata
    warnings: List[str] = Field(default_factory=list)


class MetadataUpdateRequest(CamelModel):
    session_id: str
    image_id: str
    changes: List[MetadataChange] = Field(default_factory=list)


class ConvertRequest(CamelModel):
    session_id: str
    image_ids: List[str] = Field(..., min_length=1)
    target_format: Literal["jpeg", "png", "webp"]
    quality: int = Field(90, ge=1, le=100)
    preserve_metadata: bool = True


class ConvertedItem(CamelModel):
    id: str
    success: bool
    filename: Optional[str] = None
    format: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    warning: Optional[str] = None
    error: Optional[str] = None


class ConvertResponse(CamelModel):
    converted: List[ConvertedItem] = Field(default_factory=list)


class RenameRequest(CamelModel):
    session_id: str
    image_ids: List[str] = Field(..., min_length=1)
    pattern: str = Field(..., min_length=1)
    separator: str = "_"
    start_number: int = 1


class RenameItem(CamelModel):
    id: str
    old_name: str
    new_name: str


class RenameResponse(CamelModel):
    renames: List[RenameItem] = Field(default_factory=list)
