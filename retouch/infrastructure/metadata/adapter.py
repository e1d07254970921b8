"""Tag-preserving metadata reads and writes on top of an external metadata tool."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ...application.ports.metadata_tool import MetadataTool
from ...exceptions import MetadataCopyFailure, RetouchError
from ...schemas.metadata import ImageMetadata, MetadataChange
from ..tools.process import scratch_dir, scratch_file
from .mapping import ChangeError, build_metadata, changes_to_assignments, dimension_overrides

logger = logging.getLogger(__name__)


@dataclass
class ReadResult:
    metadata: ImageMetadata
    warning: Optional[str] = None


@dataclass
class WriteResult:
    data: bytes
    ok: bool
    error: Optional[str] = None


@dataclass
class CopyResult:
    data: bytes
    warning: Optional[MetadataCopyFailure] = None


def _suffix(format_hint: Optional[str]) -> str:
    if not format_hint:
        return ".bin"
    hint = format_hint.lower()
    if hint.startswith("."):
        return hint
    return ".jpg" if hint in ("jpeg", "jpg") else f".{hint}"


@dataclass
class MetadataAdapter:
    tool: MetadataTool

    def read_path(self, path: str) -> ReadResult:
        try:
            flat = self.tool.read_tags(path)
        except RetouchError as e:
            logger.warning(f"Metadata extraction failed for {path}: {e.message}")
            return ReadResult(ImageMetadata.empty(), warning=e.message)
        try:
            return ReadResult(build_metadata(flat))
        except (ValueError, TypeError) as e:
            logger.warning(f"Metadata normalization failed for {path}: {e}")
            return ReadResult(ImageMetadata.empty(), warning=str(e))

    def read_all(self, data: bytes, format_hint: Optional[str] = None) -> ReadResult:
        """Never raises: a parse failure yields empty metadata plus a warning."""
        with scratch_dir() as tmp:
            path = scratch_file(tmp, _suffix(format_hint))
            path.write_bytes(data)
            return self.read_path(str(path))

    def apply_changes(self, data: bytes, changes: List[MetadataChange],
                      format_hint: Optional[str] = None) -> WriteResult:
        """All-or-nothing: either every change lands or the input bytes come back untouched."""
        if not changes:
            return WriteResult(data=data, ok=True)
        try:
            assignments = changes_to_assignments(changes)
        except ChangeError as e:
            logger.info(f"Rejected metadata change list: {e}")
            return WriteResult(data=data, ok=False, error=str(e))

        with scratch_dir() as tmp:
            path = scratch_file(tmp, _suffix(format_hint))
            path.write_bytes(data)
            try:
                self.tool.write_tags(str(path), assignments)
            except RetouchError as e:
                logger.warning(f"Metadata write failed: {e.message}")
                return WriteResult(data=data, ok=False, error=e.message)
            written = path.read_bytes()
        logger.info(f"Applied {len(changes)} metadata change(s) as {len(assignments)} tag write(s)")
        return WriteResult(data=written, ok=True)

    def strip_all(self, data: bytes, format_hint: Optional[str] = None) -> bytes:
        """Drop every writable tag without touching the pixel stream."""
        with scratch_dir() as tmp:
            path = scratch_file(tmp, _suffix(format_hint))
            path.write_bytes(data)
            self.tool.write_tags(str(path), ["-all="])
            return path.read_bytes()

    def copy_all(self, source_path: Optional[str], target: bytes, target_ext: str,
                 width: Optional[int] = None, height: Optional[int] = None) -> CopyResult:
        """Merge every tag from ``source_path`` onto ``target``.

        Tries with the width/height overrides first, then once without them.
        When both attempts fail the unmodified target comes back with a
        MetadataCopyFailure warning; callers still treat that as success.
        """
        if not source_path:
            return CopyResult(target, MetadataCopyFailure("Original file not found; metadata was not copied"))

        overrides: Dict[str, Any] = dimension_overrides(width, height)
        attempts = [overrides, {}] if overrides else [{}]
        last_error = ""
        with scratch_dir() as tmp:
            for attempt in attempts:
                path = scratch_file(tmp, _suffix(target_ext))
                path.write_bytes(target)
                try:
                    self.tool.copy_tags_from_file(source_path, str(path), attempt or None)
                except RetouchError as e:
                    last_error = e.message
                    label = "with" if attempt else "without"
                    logger.warning(f"Metadata copy {label} dimension overrides failed: {e.message}")
                    continue
                return CopyResult(path.read_bytes())
        return CopyResult(target, MetadataCopyFailure(f"Metadata copy failed: {last_error}"))
