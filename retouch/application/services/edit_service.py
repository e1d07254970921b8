import logging
import time
from dataclasses import dataclass

from ...exceptions import EditFailure, RetouchError
from ...infrastructure.imaging import masks
from ...infrastructure.imaging.codec import RasterCodec, is_heif
from ...infrastructure.storage.session_store import (
    ResolvedFile,
    SessionFileStore,
    mime_for_ext,
    new_version_id,
)
from ...schemas.artifact import image_url, thumbnail_url
from ...schemas.edit import ActionView, AIEditRequest, EditResponse, HistoryView, MaskDrawRequest
from ..history import ORIGINAL, ActionType, EditAction, EditHistory
from ..ports.ai_editor import AIImageEditor
from ..session_context import SessionRegistry

logger = logging.getLogger(__name__)

VERSION_EXT = ".png"


@dataclass
class EditService:
    store: SessionFileStore
    codec: RasterCodec
    ai_editor: AIImageEditor
    sessions: SessionRegistry

    # --- reads ---
    def _require(self, session_id: str, artifact_id: str) -> None:
        # unknown ids must not grow history or lock entries
        self.store.read(session_id, artifact_id)

    def resolve_version(self, session_id: str, artifact_id: str, version: str) -> ResolvedFile:
        return self.store.read(session_id, artifact_id if version == ORIGINAL else version)

    def current_file(self, session_id: str, artifact_id: str) -> ResolvedFile:
        """The original while the cursor is at -1, otherwise the active version."""
        self._require(session_id, artifact_id)
        history = self.sessions.get(session_id).history(artifact_id)
        return self.resolve_version(session_id, artifact_id, history.current_version)

    def history_view(self, session_id: str, artifact_id: str) -> HistoryView:
        self._require(session_id, artifact_id)
        history = self.sessions.get(session_id).history(artifact_id)
        return self._view(session_id, history)

    def _view(self, session_id: str, history: EditHistory) -> HistoryView:
        current = history.current_version
        shown = history.artifact_id if current == ORIGINAL else current
        return HistoryView(
            image_id=history.artifact_id,
            cursor=history.cursor,
            can_undo=history.can_undo,
            can_redo=history.can_redo,
            current_version=current,
            current_image_url=image_url(session_id, shown),
            actions=[
                ActionView(
                    index=i,
                    type=a.type.value,
                    prompt=a.prompt,
                    model=a.model,
                    before_version=a.before_version,
                    after_version=a.after_version,
                    mask_version=a.mask_version,
                    timestamp=a.timestamp,
                )
                for i, a in enumerate(history.actions)
            ],
        )

    # --- transitions ---
    def undo(self, session_id: str, artifact_id: str) -> HistoryView:
        self._require(session_id, artifact_id)
        with self.sessions.lock(session_id, artifact_id):
            history = self.sessions.get(session_id).history(artifact_id)
            history.undo()
            return self._view(session_id, history)

    def redo(self, session_id: str, artifact_id: str) -> HistoryView:
        self._require(session_id, artifact_id)
        with self.sessions.lock(session_id, artifact_id):
            history = self.sessions.get(session_id).history(artifact_id)
            history.redo()
            return self._view(session_id, history)

    def revert(self, session_id: str, artifact_id: str, target_index: int) -> HistoryView:
        self._require(session_id, artifact_id)
        with self.sessions.lock(session_id, artifact_id):
            history = self.sessions.get(session_id).history(artifact_id)
            action = history.revert(target_index)
            logger.info(f"Reverted {artifact_id} to index {target_index} ({action.after_version})")
            return self._view(session_id, history)

    def mask_draw(self, request: MaskDrawRequest) -> HistoryView:
        mask_bytes = masks.decode_data_url(request.mask_data_url)
        self._require(request.session_id, request.image_id)
        with self.sessions.lock(request.session_id, request.image_id):
            history = self.sessions.get(request.session_id).history(request.image_id)
            current = self.resolve_version(request.session_id, request.image_id, history.current_version)
            size = self.codec.probe(current.read(), current.path)
            mask = masks.load_mask(mask_bytes, (size.width, size.height))
            mask_id = new_version_id(request.image_id)
            self.store.store(request.session_id, mask_id, VERSION_EXT, masks.mask_to_png(mask))
            history.append(EditAction(
                type=ActionType.MASK_DRAW,
                before_version=history.current_version,
                after_version=history.current_version,
                mask_version=mask_id,
            ))
            return self._view(request.session_id, history)

    def ai_edit(self, request: AIEditRequest) -> EditResponse:
        started = time.monotonic()
        inpaint = masks.decode_data_url(request.inpaint_mask_data_url) if request.inpaint_mask_data_url else None
        protect = masks.decode_data_url(request.protect_mask_data_url) if request.protect_mask_data_url else None
        self._require(request.session_id, request.image_id)

        with self.sessions.lock(request.session_id, request.image_id):
            history = self.sessions.get(request.session_id).history(request.image_id)
            before = history.current_version
            current = self.resolve_version(request.session_id, request.image_id, before)
            data = current.read()

            original = self.codec.decode(data, current.path)
            mask = masks.combine_masks(inpaint, protect, original.size)
            if is_heif(data, current.path):
                send_bytes, send_mime = self.codec.encode(original, "png"), "image/png"
            else:
                send_bytes, send_mime = data, mime_for_ext(current.ext)

            result = self.ai_editor.edit_image(
                request.prompt,
                send_bytes,
                send_mime,
                mask_png=masks.mask_to_png(mask) if mask is not None else None,
                model=request.model,
            )
            try:
                edited = self.codec.decode(result.image_bytes)
            except RetouchError as e:
                raise EditFailure(f"AI edit returned an unreadable image: {e.message}") from e
            if mask is not None:
                edited = masks.composite(original, edited, mask)

            version_id = new_version_id(request.image_id)
            png = self.codec.encode(edited, "png")
            self.store.store(request.session_id, version_id, VERSION_EXT, png)
            thumb = self.codec.generate_thumbnail(png)
            if thumb is not None:
                self.store.store_thumbnail(request.session_id, version_id, thumb)

            history.append(EditAction(
                type=ActionType.AI_EDIT,
                before_version=before,
                after_version=version_id,
                prompt=request.prompt,
                model=request.model,
            ))
            view = self._view(request.session_id, history)

        elapsed = int((time.monotonic() - started) * 1000)
        logger.info(f"AI edit of {request.image_id} stored as {version_id} in {elapsed}ms")
        return EditResponse(
            new_version_id=version_id,
            edited_image_url=image_url(request.session_id, version_id),
            thumbnail_url=thumbnail_url(request.session_id, version_id) if thumb is not None else None,
            processing_time_ms=elapsed,
            text=result.text,
            history=view,
        )

