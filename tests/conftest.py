import io
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest
from PIL import Image

from retouch.application.ports.ai_editor import AIEditResult
from retouch.application.session_context import SessionRegistry
from retouch.exceptions import EditFailure
from retouch.infrastructure.imaging.codec import RasterCodec
from retouch.infrastructure.metadata.adapter import MetadataAdapter
from retouch.infrastructure.storage.session_store import SessionFileStore
from retouch.infrastructure.tools.process import ToolError

HEIC_HEADER = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic"


def png_bytes(size=(40, 30), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def jpeg_bytes(size=(40, 30), color=(30, 120, 200), quality=90) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def heic_bytes(size: int = 2048) -> bytes:
    return HEIC_HEADER + b"\x00" * max(0, size - len(HEIC_HEADER))


class FakeMagick:
    """Stands in for ToolRunner when the codec shells out to ImageMagick.

    HEIC output size grows linearly with quality so the quality search can be
    exercised deterministically.
    """

    def __init__(self, bytes_per_quality: int = 1000, decoded_size=(40, 30), fail_encode: bool = False):
        self.bytes_per_quality = bytes_per_quality
        self.decoded_size = decoded_size
        self.fail_encode = fail_encode
        self.calls: List[List[str]] = []

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> bytes:
        args = [str(a) for a in argv]
        self.calls.append(args)
        if args[1] == "identify":
            w, h = self.decoded_size
            return f"{w} {h} 85 sRGB 8\n".encode()
        if args[-1] == "png:-":
            return png_bytes(self.decoded_size)
        if "-quality" in args:
            if self.fail_encode:
                raise ToolError("magick: no encode delegate for this image format", returncode=1)
            quality = int(args[args.index("-quality") + 1])
            Path(args[-1]).write_bytes(heic_bytes(quality * self.bytes_per_quality))
            return b""
        raise AssertionError(f"unexpected magick call: {args}")

    def encode_qualities(self) -> List[int]:
        return [int(c[c.index("-quality") + 1]) for c in self.calls if "-quality" in c]


class FakeMetadataTool:
    """In-memory metadata tool: tags are held per fake, writes append a marker to the file."""

    def __init__(self, tags: Optional[Dict[str, Any]] = None):
        self.tags: Dict[str, Any] = dict(tags or {})
        self.fail_read = False
        self.fail_write = False
        self.fail_write_on: Optional[bytes] = None
        self.fail_copy_with_overrides = False
        self.fail_copy = False
        self.writes: List[List[str]] = []
        self.copies: List[Dict[str, Any]] = []

    def read_tags(self, path: str) -> Dict[str, Any]:
        if self.fail_read:
            raise ToolError("exiftool: File format error", returncode=1)
        return dict(self.tags)

    def write_tags(self, path: str, assignments: Sequence[str]) -> None:
        if self.fail_write or (self.fail_write_on is not None and self.fail_write_on in Path(path).read_bytes()):
            raise ToolError("exiftool: Error writing file", returncode=1)
        self.writes.append(list(assignments))
        with open(path, "ab") as f:
            f.write(b"META:" + "|".join(assignments).encode())

    def copy_tags_from_file(self, source_path: str, target_path: str, overrides: Optional[Dict[str, Any]] = None) -> None:
        self.copies.append({"source": source_path, "target": target_path, "overrides": dict(overrides or {})})
        if self.fail_copy or (overrides and self.fail_copy_with_overrides):
            raise ToolError("exiftool: Error copying tags", returncode=1)
        with open(target_path, "ab") as f:
            f.write(b"COPIED")


class FakeAIEditor:
    def __init__(self, color=(0, 255, 0), fail: bool = False):
        self.color = color
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    def edit_image(self, prompt, image_bytes, mime_type, mask_png=None, model=None) -> AIEditResult:
        self.calls.append({"prompt": prompt, "mime_type": mime_type, "mask": mask_png, "model": model})
        if self.fail:
            raise EditFailure("AI edit failed: quota exceeded")
        with Image.open(io.BytesIO(image_bytes)) as img:
            size = img.size
        return AIEditResult(image_bytes=png_bytes(size, self.color), mime_type="image/png", text="done")


@pytest.fixture
def store(tmp_path) -> SessionFileStore:
    return SessionFileStore(str(tmp_path / "sessions"))


@pytest.fixture
def sessions() -> SessionRegistry:
    return SessionRegistry(lock_timeout=0.2)


@pytest.fixture
def magick() -> FakeMagick:
    return FakeMagick()


@pytest.fixture
def codec(magick) -> RasterCodec:
    return RasterCodec(magick, thumbnail_size=(16, 16), thumbnail_quality=80)


@pytest.fixture
def metadata_tool() -> FakeMetadataTool:
    return FakeMetadataTool({
        "IFD0:Make": "Apple",
        "IFD0:Model": "iPhone 15 Pro",
        "ExifIFD:DateTimeOriginal": "2024:05:01 10:20:30",
        "Composite:GPSLatitude": 37.3875,
        "Composite:GPSLongitude": -122.0575,
    })


@pytest.fixture
def metadata(metadata_tool) -> MetadataAdapter:
    return MetadataAdapter(metadata_tool)


@pytest.fixture
def ai_editor() -> FakeAIEditor:
    return FakeAIEditor()
