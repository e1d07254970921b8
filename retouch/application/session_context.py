"""Session-scoped state: artifact records, edit histories and per-artifact locks.

A single SessionRegistry is created by the application factory and stored on
``app.state``; nothing here is a module-level singleton.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from ..exceptions import ArtifactBusy
from ..schemas.artifact import ArtifactInfo
from .history import EditHistory

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    session_id: str
    artifacts: Dict[str, ArtifactInfo] = field(default_factory=dict)
    histories: Dict[str, EditHistory] = field(default_factory=dict)

    def history(self, artifact_id: str) -> EditHistory:
        existing = self.histories.get(artifact_id)
        if existing is None:
            existing = self.histories[artifact_id] = EditHistory(artifact_id=artifact_id)
        return existing

    def artifact(self, artifact_id: str) -> Optional[ArtifactInfo]:
        return self.artifacts.get(artifact_id)

    def forget(self, artifact_id: str) -> None:
        self.artifacts.pop(artifact_id, None)
        self.histories.pop(artifact_id, None)


class ArtifactLocks:
    """One mutex per (session, artifact); waiters give up after ``timeout`` seconds."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Tuple[str, str]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, session_id: str, artifact_id: str) -> Iterator[None]:
        lock = self._lock_for((session_id, artifact_id))
        if not lock.acquire(timeout=self.timeout):
            logger.warning(f"Timed out waiting for artifact {artifact_id} in session {session_id}")
            raise ArtifactBusy(f"Image {artifact_id} is busy with another operation; retry shortly")
        try:
            yield
        finally:
            lock.release()

    def __contains__(self, key: Tuple[str, str]) -> bool:
        with self._guard:
            return key in self._locks

    def discard(self, session_id: str, artifact_id: str) -> None:
        with self._guard:
            self._locks.pop((session_id, artifact_id), None)

    def discard_session(self, session_id: str) -> None:
        with self._guard:
            for key in [k for k in self._locks if k[0] == session_id]:
                del self._locks[key]


class SessionRegistry:
    def __init__(self, lock_timeout: float = 30.0) -> None:
        self._sessions: Dict[str, SessionContext] = {}
        self._guard = threading.Lock()
        self.locks = ArtifactLocks(timeout=lock_timeout)

    def get(self, session_id: str) -> SessionContext:
        with self._guard:
            ctx = self._sessions.get(session_id)
            if ctx is None:
                ctx = self._sessions[session_id] = SessionContext(session_id=session_id)
            return ctx

    def lock(self, session_id: str, artifact_id: str):
        return self.locks.hold(session_id, artifact_id)

    def forget(self, session_id: str, artifact_id: str) -> None:
        """Drop an artifact's record, history and lock once its files are gone."""
        self.get(session_id).forget(artifact_id)
        self.locks.discard(session_id, artifact_id)

    def drop(self, session_id: str) -> None:
        with self._guard:
            self._sessions.pop(session_id, None)
        self.locks.discard_session(session_id)
