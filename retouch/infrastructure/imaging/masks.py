import base64
import binascii
import io
import re
from typing import Optional, Tuple

from PIL import Image, ImageChops, ImageFilter, ImageOps, UnidentifiedImageError

from ...exceptions import InvalidRequest

_DATA_URL = re.compile(r"^data:[\w/+.-]+;base64,")

MASK_THRESHOLD = 128
MASK_TRANSITION = 30
FEATHER_RADIUS = 1.5


def decode_data_url(value: str) -> bytes:
    try:
        return base64.b64decode(_DATA_URL.sub("", value.strip()), validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequest(f"Invalid base64 image payload: {e}") from e


def load_mask(data: bytes, size: Tuple[int, int]) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.convert("L").resize(size, Image.Resampling.BILINEAR)
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidRequest(f"Mask is not a readable image: {e}") from e


def combine_masks(inpaint: Optional[bytes], protect: Optional[bytes],
                  size: Tuple[int, int]) -> Optional[Image.Image]:
    """White = editable. The protect mask always wins over the inpaint mask."""
    if inpaint is None and protect is None:
        return None
    if protect is None:
        return load_mask(inpaint, size)
    protected = load_mask(protect, size).point(lambda v: 255 if v > MASK_THRESHOLD else 0)
    if inpaint is None:
        return ImageOps.invert(protected)
    return ImageChops.subtract(load_mask(inpaint, size), protected)


def _ramp(value: int) -> int:
    low = MASK_THRESHOLD - MASK_TRANSITION
    high = MASK_THRESHOLD + MASK_TRANSITION
    if value > high:
        return 255
    if value < low:
        return 0
    return int(round((value - low) / (high - low) * 255))


def composite(original: Image.Image, edited: Image.Image, mask: Image.Image) -> Image.Image:
    """Paste edited pixels onto the original through a feathered, thresholded mask."""
    size = original.size
    base = original.convert("RGBA")
    overlay = edited.convert("RGBA")
    if overlay.size != size:
        overlay = overlay.resize(size, Image.Resampling.LANCZOS)
    alpha = mask.convert("L").resize(size).filter(ImageFilter.GaussianBlur(FEATHER_RADIUS)).point(_ramp)
    return Image.composite(overlay, base, alpha)


def mask_to_png(mask: Image.Image) -> bytes:
    buf = io.BytesIO()
    mask.save(buf, format="PNG")
    return buf.getvalue()
