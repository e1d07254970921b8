import logging
from dataclasses import dataclass
from typing import List

from ...exceptions import MetadataWriteFailure
from ...infrastructure.imaging.codec import RasterCodec
from ...infrastructure.metadata.adapter import MetadataAdapter, ReadResult
from ...infrastructure.storage.session_store import SessionFileStore
from ...schemas.metadata import ImageMetadata, MetadataChange
from ..session_context import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class MetadataService:
    store: SessionFileStore
    codec: RasterCodec
    metadata: MetadataAdapter
    sessions: SessionRegistry

    def read(self, session_id: str, image_id: str) -> ReadResult:
        resolved = self.store.read(session_id, image_id)
        return self.metadata.read_path(resolved.path)

    def update(self, session_id: str, image_id: str, changes: List[MetadataChange]) -> ImageMetadata:
        """Rewrite the stored file in place, refresh its thumbnail and return the new snapshot."""
        with self.sessions.lock(session_id, image_id):
            resolved = self.store.read(session_id, image_id)
            result = self.metadata.apply_changes(resolved.read(), changes, resolved.ext)
            if not result.ok:
                raise MetadataWriteFailure(result.error or "Metadata write failed")

            if changes:
                self.store.store(session_id, image_id, resolved.ext, result.data)
                thumb = self.codec.generate_thumbnail(result.data, resolved.path)
                if thumb is not None:
                    self.store.store_thumbnail(session_id, image_id, thumb)

            read = self.metadata.read_path(resolved.path)
            if read.warning:
                logger.warning(f"Re-reading metadata for {image_id} after write failed: {read.warning}")

            record = self.sessions.get(session_id).artifact(image_id)
            if record is not None:
                record.metadata = read.metadata
                record.file_size = len(result.data)
        logger.info(f"Updated metadata for {image_id} with {len(changes)} change(s)")
        return read.metadata
