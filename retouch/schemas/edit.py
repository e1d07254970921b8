# retouch/schemas/edit.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .metadata import CamelModel


class AIEditRequest(CamelModel):
    session_id: str
    image_id: str
    prompt: str = Field(..., min_length=1)
    inpaint_mask_data_url: Optional[str] = Field(None, description="White = area the model may edit")
    protect_mask_data_url: Optional[str] = Field(None, description="White = area that must stay untouched")
    model: Optional[str] = None


class MaskDrawRequest(CamelModel):
    session_id: str
    image_id: str
    mask_data_url: str


class HistoryRequest(CamelModel):
    session_id: str
    image_id: str


class RevertRequest(HistoryRequest):
    target_index: int = Field(..., description="-1 restores the unedited original")


class ActionView(CamelModel):
    index: int
    type: str
    prompt: Optional[str] = None
    model: Optional[str] = None
    before_version: str
    after_version: str
    mask_version: Optional[str] = None
    timestamp: datetime


class HistoryView(CamelModel):
    image_id: str
    cursor: int
    can_undo: bool
    can_redo: bool
    current_version: str
    current_image_url: str
    actions: List[ActionView] = Field(default_factory=list)


class EditResponse(CamelModel):
    success: bool = True
    new_version_id: str
    edited_image_url: str
    thumbnail_url: Optional[str] = None
    processing_time_ms: int
    text: Optional[str] = None
    history: HistoryView
