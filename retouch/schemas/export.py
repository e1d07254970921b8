# retouch/schemas/export.py
from typing import List, Literal, Optional

from pydantic import Field

from .metadata import CamelModel


class ExportVersionRequest(CamelModel):
    session_id: str
    version_id: str = Field(..., description="Version to export; equal to originalImageId when unedited")
    original_image_id: str
    original_filename: str
    original_format: str
    original_width: int = Field(..., gt=0)
    original_height: int = Field(..., gt=0)
    original_file_size: Optional[int] = Field(None, gt=0)
    original_quality: Optional[int] = Field(None, ge=1, le=100)
    target_format: Literal["heic", "jpg"]


class BatchExportRequest(CamelModel):
    items: List[ExportVersionRequest] = Field(..., min_length=1)


class BatchItemReport(CamelModel):
    version_id: str
    success: bool
    filename: Optional[str] = None
    quality: Optional[int] = None
    file_size: Optional[int] = None
    warning: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


class BulkItemReport(CamelModel):
    image_id: str
    success: bool
    filename: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


class BulkExportRequest(CamelModel):
    session_id: str
    image_ids: List[str] = Field(..., min_length=1)
    strip_metadata: bool = False
