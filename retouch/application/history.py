"""Linear per-artifact edit history with a cursor.

The cursor is ``-1`` while the unedited original is displayed; otherwise it
indexes the action whose ``after_version`` is on screen. Appending while the
cursor sits behind the end discards the redo branch first.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from ..exceptions import InvalidIndex

logger = logging.getLogger(__name__)

ORIGINAL = "original"


class ActionType(str, Enum):
    AI_EDIT = "ai-edit"
    MASK_DRAW = "mask-draw"
    REVERT = "revert"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EditAction:
    type: ActionType
    before_version: str
    after_version: str
    prompt: Optional[str] = None
    model: Optional[str] = None
    mask_version: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)


@dataclass
class EditHistory:
    artifact_id: str
    actions: List[EditAction] = field(default_factory=list)
    cursor: int = -1

    @property
    def can_undo(self) -> bool:
        return self.cursor > -1

    @property
    def can_redo(self) -> bool:
        return self.cursor < len(self.actions) - 1

    def version_at(self, index: int) -> str:
        """Version id displayed when the cursor is at ``index``; ORIGINAL for -1."""
        if index == -1:
            return ORIGINAL
        return self.actions[index].after_version

    @property
    def current_version(self) -> str:
        return self.version_at(self.cursor)

    def append(self, action: EditAction) -> None:
        if self.cursor < len(self.actions) - 1:
            dropped = len(self.actions) - 1 - self.cursor
            del self.actions[self.cursor + 1:]
            logger.debug(f"Pruned {dropped} redo action(s) for {self.artifact_id}")
        self.actions.append(action)
        self.cursor = len(self.actions) - 1

    def undo(self) -> None:
        self.cursor = max(self.cursor - 1, -1)

    def redo(self) -> None:
        self.cursor = min(self.cursor + 1, len(self.actions) - 1)

    def revert(self, target_index: int) -> EditAction:
        if not -1 <= target_index < len(self.actions):
            raise InvalidIndex(
                f"Revert target {target_index} is outside [-1, {len(self.actions) - 1}]"
            )
        action = EditAction(
            type=ActionType.REVERT,
            before_version=self.current_version,
            after_version=self.version_at(target_index),
        )
        self.append(action)
        return action
