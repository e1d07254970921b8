from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class AIEditResult:
    image_bytes: bytes
    mime_type: str
    text: Optional[str] = None


class AIImageEditor(Protocol):
    def edit_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        mask_png: Optional[bytes] = None,
        model: Optional[str] = None,
    ) -> AIEditResult:
        ...
