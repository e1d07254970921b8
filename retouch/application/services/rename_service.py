from dataclasses import dataclass
from typing import List

from ...infrastructure.storage.session_store import SessionFileStore
from ...schemas.operations import RenameItem, RenameRequest
from ..session_context import SessionRegistry


@dataclass
class RenameService:
    store: SessionFileStore
    sessions: SessionRegistry

    def preview(self, request: RenameRequest) -> List[RenameItem]:
        """Display names only; ids and files on disk stay as they are."""
        ctx = self.sessions.get(request.session_id)
        renames: List[RenameItem] = []
        for offset, image_id in enumerate(request.image_ids):
            resolved = self.store.resolve(request.session_id, image_id)
            if resolved is None:
                continue
            record = ctx.artifact(image_id)
            old_name = record.original_filename if record else f"{image_id}{resolved.ext}"
            renames.append(RenameItem(
                id=image_id,
                old_name=old_name,
                new_name=f"{request.pattern}{request.separator}{request.start_number + offset}{resolved.ext}",
            ))
        return renames
