import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Sequence, Tuple

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from ...exceptions import InvalidRequest, RetouchError
from ...infrastructure.imaging.codec import RasterCodec
from ...infrastructure.metadata.adapter import MetadataAdapter
from ...infrastructure.storage.session_store import SessionFileStore, format_to_ext, new_artifact_id
from ...schemas.artifact import ArtifactInfo, UploadItemError, UploadResponse, image_url, thumbnail_url
from ..session_context import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class UploadService:
    store: SessionFileStore
    codec: RasterCodec
    metadata: MetadataAdapter
    sessions: SessionRegistry
    allowed_types: Sequence[str] = field(default_factory=list)
    heic_extensions: Sequence[str] = (".heic", ".heif")
    max_file_size: int = 100 * 1024 * 1024

    def _is_heic_name(self, filename: str) -> bool:
        return os.path.splitext(filename)[1].lower() in self.heic_extensions

    def check_type(self, filename: str, content_type: str) -> None:
        # browsers often send HEIC as application/octet-stream
        if self._is_heic_name(filename):
            return
        if content_type not in self.allowed_types:
            raise InvalidRequest(f"File type {content_type or 'unknown'} not allowed")

    def ingest(self, session_id: str, filename: str, content_type: str, data: bytes) -> Tuple[ArtifactInfo, List[str]]:
        """Store one original plus its thumbnail and capture its characteristics."""
        self.check_type(filename, content_type)
        if not data:
            raise InvalidRequest(f"{filename} is empty")
        if len(data) > self.max_file_size:
            raise InvalidRequest(f"File too large (max {self.max_file_size // (1024 * 1024)}MB)")

        info = self.codec.probe(data, filename)
        ext = format_to_ext(info.format)
        artifact_id = new_artifact_id()
        self.store.store(session_id, artifact_id, ext, data)

        warnings: List[str] = []
        thumb = self.codec.generate_thumbnail(data, filename)
        if thumb is not None:
            self.store.store_thumbnail(session_id, artifact_id, thumb)
        else:
            warnings.append(f"Thumbnail could not be generated for {filename}")

        read = self.metadata.read_all(data, ext)
        if read.warning:
            warnings.append(f"Metadata could not be read for {filename}: {read.warning}")

        artifact = ArtifactInfo(
            id=artifact_id,
            session_id=session_id,
            original_filename=filename,
            format=info.format,
            width=info.width,
            height=info.height,
            file_size=info.file_size,
            quality=info.quality,
            color_space=info.color_space,
            bit_depth=info.bit_depth,
            metadata=read.metadata,
            image_url=image_url(session_id, artifact_id),
            thumbnail_url=thumbnail_url(session_id, artifact_id) if thumb is not None else None,
            created_at=datetime.now(timezone.utc),
        )
        self.sessions.get(session_id).artifacts[artifact_id] = artifact
        logger.info(f"Ingested {filename} as {artifact_id}{ext} ({info.width}x{info.height}, {info.file_size} bytes)")
        return artifact, warnings

    async def upload_files(self, session_id: str, files: List[UploadFile]) -> UploadResponse:
        if not files:
            raise InvalidRequest("At least one file must be uploaded.")
        self.store.session_dir(session_id)
        response = UploadResponse()
        for uploaded in files:
            filename = uploaded.filename or "upload"
            data = await uploaded.read()
            try:
                artifact, warnings = await run_in_threadpool(
                    self.ingest, session_id, filename, uploaded.content_type or "", data
                )
            except RetouchError as e:
                logger.info(f"Skipped {filename}: {e.message}")
                response.errors.append(UploadItemError(filename=filename, error=e.message))
                continue
            response.images.append(artifact)
            response.warnings.extend(warnings)
        response.success = bool(response.images)
        return response

    def delete(self, session_id: str, artifact_id: str) -> List[str]:
        with self.sessions.lock(session_id, artifact_id):
            removed = self.store.delete(session_id, artifact_id)
        self.sessions.forget(session_id, artifact_id)
        return removed

    def cleanup(self, session_id: str) -> None:
        self.store.delete_session(session_id)
        self.sessions.drop(session_id)
