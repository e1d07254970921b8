import logging
import os
from dataclasses import dataclass
from typing import List

from ...exceptions import RetouchError
from ...infrastructure.imaging.codec import RasterCodec
from ...infrastructure.metadata.adapter import MetadataAdapter
from ...infrastructure.storage.session_store import SessionFileStore, format_to_ext, mime_for_ext
from ...schemas.operations import ConvertedItem, ConvertRequest
from ..session_context import SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class ConvertService:
    store: SessionFileStore
    codec: RasterCodec
    metadata: MetadataAdapter
    sessions: SessionRegistry

    def convert_one(self, session_id: str, image_id: str, target: str, quality: int,
                    preserve_metadata: bool) -> ConvertedItem:
        new_ext = format_to_ext(target)
        with self.sessions.lock(session_id, image_id):
            resolved = self.store.read(session_id, image_id)
            converted = self.codec.convert(
                resolved.read(), target, quality=quality,
                preserve_metadata=preserve_metadata, filename=resolved.path,
            )
            warning = None
            if preserve_metadata:
                copied = self.metadata.copy_all(resolved.path, converted, new_ext)
                converted = copied.data
                if copied.warning is not None:
                    warning = copied.warning.message

            self.store.store(session_id, image_id, new_ext, converted)
            if resolved.ext != new_ext:
                self.store.remove_file(session_id, image_id, resolved.ext)
            thumb = self.codec.generate_thumbnail(converted)
            if thumb is not None:
                self.store.store_thumbnail(session_id, image_id, thumb)

            record = self.sessions.get(session_id).artifact(image_id)
            if record is not None:
                display = os.path.splitext(record.original_filename)[0] + new_ext
                record.format = target
                record.file_size = len(converted)
                record.quality = quality if target != "png" else None
            else:
                display = f"converted{new_ext}"

        logger.info(f"Converted {image_id}{resolved.ext} to {target} ({len(converted)} bytes)")
        return ConvertedItem(
            id=image_id,
            success=True,
            filename=display,
            format=target,
            mime_type=mime_for_ext(new_ext),
            size=len(converted),
            warning=warning,
        )

    def convert(self, request: ConvertRequest) -> List[ConvertedItem]:
        results: List[ConvertedItem] = []
        for image_id in request.image_ids:
            try:
                results.append(self.convert_one(
                    request.session_id, image_id, request.target_format,
                    request.quality, request.preserve_metadata,
                ))
            except RetouchError as e:
                logger.warning(f"Convert of {image_id} failed: {e.message}")
                results.append(ConvertedItem(id=image_id, success=False, error=e.message))
        return results
