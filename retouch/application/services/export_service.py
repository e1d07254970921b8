"""Export reconciliation.

Re-encodes an edited version into the original's container format, matches
the original's quality and size footprint, and transplants the original's
metadata onto the result. Metadata problems degrade to a warning; missing
inputs and encoder failures fail only the item they belong to.
"""
import io
import logging
import os
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ...exceptions import MissingArtifact, RetouchError
from ...infrastructure.imaging.codec import RasterCodec
from ...infrastructure.metadata.adapter import MetadataAdapter
from ...infrastructure.storage.session_store import SessionFileStore, ext_to_format, mime_for_ext
from ...schemas.export import BatchItemReport, BulkItemReport, ExportVersionRequest
from ..session_context import SessionRegistry

logger = logging.getLogger(__name__)

TARGET_EXT = {"heic": "heic", "jpg": "jpg"}
TARGET_MIME = {"heic": "image/heic", "jpg": "image/jpeg"}


@dataclass
class ExportResult:
    data: bytes
    filename: str
    content_type: str
    quality: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class BatchItemResult:
    version_id: str
    result: Optional[ExportResult] = None
    error: Optional[RetouchError] = None


@dataclass
class BundleEntry:
    name: str
    data: bytes
    content_type: str
    reports: List[BulkItemReport] = field(default_factory=list)


def export_filename(original_filename: str, target_format: str) -> str:
    base = os.path.splitext(os.path.basename(original_filename))[0] or "image"
    return f"{base}_updated.{TARGET_EXT[target_format]}"


def unique_name(name: str, taken: Dict[str, int]) -> str:
    if name not in taken:
        taken[name] = 1
        return name
    taken[name] += 1
    stem, ext = os.path.splitext(name)
    return f"{stem}_{taken[name]}{ext}"


def build_zip(entries: List[Tuple[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=1) as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return buf.getvalue()


@dataclass
class ExportService:
    store: SessionFileStore
    codec: RasterCodec
    metadata: MetadataAdapter
    sessions: SessionRegistry
    heic_default_quality: int = 85
    jpeg_default_quality: int = 90
    size_tolerance: float = 0.10
    quality_search_attempts: int = 6
    workers: int = 4

    def _reencode(self, request: ExportVersionRequest, data: bytes, source_path: str) -> Tuple[bytes, int]:
        width, height = request.original_width, request.original_height
        if request.target_format == "jpg":
            quality = request.original_quality or self.jpeg_default_quality
            image = self.codec.decode(data, source_path)
            return self.codec.encode(image, "jpeg", quality=quality, size=(width, height)), quality

        quality = request.original_quality or self.heic_default_quality
        png = data if source_path.lower().endswith(".png") else self.codec.to_png(data, source_path)
        if ext_to_format(request.original_format) == "heic":
            match = self.codec.match_heic_quality(
                png, width, height, quality,
                desired_size=request.original_file_size,
                tolerance=self.size_tolerance,
                max_attempts=self.quality_search_attempts,
            )
            return match.data, match.quality
        return self.codec.encode_heic(png, width, height, quality), quality

    def export_version(self, request: ExportVersionRequest) -> ExportResult:
        with self.sessions.lock(request.session_id, request.original_image_id):
            version = self.store.resolve(request.session_id, request.version_id)
            if version is None:
                raise MissingArtifact(f"Version not found: {request.version_id}")
            original = self.store.resolve(request.session_id, request.original_image_id)

            warnings: List[str] = []
            if original is None:
                message = f"Original {request.original_image_id} not found; metadata was not copied"
                logger.warning(message)
                warnings.append(message)

            encoded, quality = self._reencode(request, version.read(), version.path)

            if original is not None:
                copied = self.metadata.copy_all(
                    original.path, encoded, TARGET_EXT[request.target_format],
                    width=request.original_width, height=request.original_height,
                )
                encoded = copied.data
                if copied.warning is not None:
                    warnings.append(copied.warning.message)

        filename = export_filename(request.original_filename, request.target_format)
        logger.info(
            f"Exported {request.version_id} as {filename} "
            f"({len(encoded)} bytes, q={quality}, {len(warnings)} warning(s))"
        )
        return ExportResult(
            data=encoded,
            filename=filename,
            content_type=TARGET_MIME[request.target_format],
            quality=quality,
            warnings=warnings,
        )

    def _export_isolated(self, request: ExportVersionRequest) -> BatchItemResult:
        try:
            return BatchItemResult(request.version_id, result=self.export_version(request))
        except RetouchError as e:
            logger.warning(f"Batch item {request.version_id} failed: {e.kind}: {e.message}")
            return BatchItemResult(request.version_id, error=e)

    def _export_group(self, requests: List[ExportVersionRequest]) -> List[BatchItemResult]:
        return [self._export_isolated(r) for r in requests]

    def export_batch(self, requests: List[ExportVersionRequest]) -> List[BatchItemResult]:
        """Run exports through a bounded pool; one item's failure never skips its siblings.

        Items sharing an original run in order on one worker, so they never
        wait on each other's artifact lock.
        """
        groups: Dict[Tuple[str, str], List[int]] = {}
        for index, r in enumerate(requests):
            groups.setdefault((r.session_id, r.original_image_id), []).append(index)

        results: List[Optional[BatchItemResult]] = [None] * len(requests)
        with ThreadPoolExecutor(max_workers=max(1, self.workers)) as pool:
            futures = {
                pool.submit(self._export_group, [requests[i] for i in indexes]): indexes
                for indexes in groups.values()
            }
            for future, indexes in futures.items():
                for index, item in zip(indexes, future.result()):
                    results[index] = item
        return results

    def bundle_batch(self, results: List[BatchItemResult]) -> Tuple[bytes, List[BatchItemReport]]:
        entries: List[Tuple[str, bytes]] = []
        reports: List[BatchItemReport] = []
        taken: Dict[str, int] = {}
        for item in results:
            if item.result is None:
                reports.append(BatchItemReport(
                    version_id=item.version_id,
                    success=False,
                    error_kind=item.error.kind if item.error else None,
                    error=item.error.message if item.error else None,
                ))
                continue
            name = unique_name(item.result.filename, taken)
            entries.append((name, item.result.data))
            reports.append(BatchItemReport(
                version_id=item.version_id,
                success=True,
                filename=name,
                quality=item.result.quality,
                file_size=len(item.result.data),
                warning="; ".join(item.result.warnings) or None,
            ))
        return build_zip(entries), reports

    def _bulk_item(self, session_id: str, image_id: str, strip_metadata: bool) -> Tuple[str, bytes]:
        resolved = self.store.read(session_id, image_id)
        data = resolved.read()
        if strip_metadata:
            data = self.metadata.strip_all(data, resolved.ext)
        record = self.sessions.get(session_id).artifact(image_id)
        if record is not None:
            return os.path.splitext(record.original_filename)[0] + resolved.ext, data
        return os.path.basename(resolved.path), data

    def bulk_export(self, session_id: str, image_ids: List[str], strip_metadata: bool = False) -> BundleEntry:
        """Stored files as-is: one file goes back directly, several come back as a ZIP.

        A missing file or a failed strip drops only that item; a file that was
        asked to be stripped is never shipped with its metadata.
        """
        entries: List[Tuple[str, bytes]] = []
        reports: List[BulkItemReport] = []
        errors: List[RetouchError] = []
        taken: Dict[str, int] = {}
        for image_id in image_ids:
            try:
                name, data = self._bulk_item(session_id, image_id, strip_metadata)
            except RetouchError as e:
                logger.warning(f"Bulk export of {image_id} failed: {e.kind}: {e.message}")
                errors.append(e)
                reports.append(BulkItemReport(image_id=image_id, success=False, error_kind=e.kind, error=e.message))
                continue
            name = unique_name(name, taken)
            entries.append((name, data))
            reports.append(BulkItemReport(image_id=image_id, success=True, filename=name))

        if not entries:
            failures = [e for e in errors if not isinstance(e, MissingArtifact)]
            if failures:
                raise failures[0]
            raise MissingArtifact("None of the requested images were found")
        if len(entries) == 1:
            name, data = entries[0]
            return BundleEntry(name, data, mime_for_ext(os.path.splitext(name)[1]), reports)
        return BundleEntry("images.zip", build_zip(entries), "application/zip", reports)
