# retouch/infrastructure/storage/session_store.py
import logging
import os
import re
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from typing import List, Optional

from ...exceptions import InvalidRequest, MissingArtifact

logger = logging.getLogger(__name__)

THUMB_SUFFIX = "_thumb"
THUMB_EXT = ".jpg"
VERSION_MARKER = "_v"
KNOWN_EXTENSIONS = [".heic", ".heif", ".jpg", ".jpeg", ".png", ".webp", ".tiff", ".tif"]

_SESSION_PATTERN = re.compile(r"[A-Za-z0-9-]+")
_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

FORMAT_TO_EXT = {
    "jpeg": ".jpg",
    "jpg": ".jpg",
    "png": ".png",
    "webp": ".webp",
    "heic": ".heic",
    "heif": ".heic",
    "tiff": ".tiff",
}

EXT_TO_FORMAT = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".webp": "webp",
    ".heic": "heic",
    ".heif": "heic",
    ".tiff": "tiff",
    ".tif": "tiff",
}

EXT_TO_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
}


def format_to_ext(fmt: str) -> str:
    return FORMAT_TO_EXT.get(fmt.lower(), f".{fmt.lower()}")


def ext_to_format(ext: str) -> str:
    return EXT_TO_FORMAT.get(ext.lower(), ext.lower().lstrip("."))


def mime_for_ext(ext: str) -> str:
    return EXT_TO_MIME.get(ext.lower(), "application/octet-stream")


def new_artifact_id() -> str:
    """32 lowercase hex chars; fixed length, so no artifact id is a prefix of another."""
    return uuid.uuid4().hex


def new_version_id(artifact_id: str) -> str:
    return f"{artifact_id}{VERSION_MARKER}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class ResolvedFile:
    path: str
    ext: str

    def read(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()


class SessionFileStore:
    """Filesystem namespace per session; artifacts are addressed by id, not by filename."""

    def __init__(self, root: str) -> None:
        self.root = root
        os.makedirs(self.root, exist_ok=True)

    # --- addressing ---
    def session_dir(self, session_id: str) -> str:
        # rejected rather than cleaned so two tokens never share a directory
        if not session_id or not _SESSION_PATTERN.fullmatch(session_id):
            raise InvalidRequest(f"Invalid sessionId: {session_id!r}")
        return os.path.join(self.root, session_id)

    def _check_id(self, file_id: str) -> None:
        if not file_id or not _ID_PATTERN.fullmatch(file_id):
            raise InvalidRequest(f"Invalid id: {file_id!r}")

    def file_path(self, session_id: str, file_id: str, ext: str) -> str:
        self._check_id(file_id)
        return os.path.join(self.session_dir(session_id), f"{file_id}{ext}")

    def thumbnail_path(self, session_id: str, file_id: str) -> str:
        self._check_id(file_id)
        return os.path.join(self.session_dir(session_id), f"{file_id}{THUMB_SUFFIX}{THUMB_EXT}")

    def ensure_session_dir(self, session_id: str) -> str:
        path = self.session_dir(session_id)
        os.makedirs(path, exist_ok=True)
        return path

    # --- writes ---
    def _atomic_write(self, directory: str, dest: str, data: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, dest)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def store(self, session_id: str, file_id: str, ext: str, data: bytes) -> str:
        directory = self.ensure_session_dir(session_id)
        dest = self.file_path(session_id, file_id, ext)
        self._atomic_write(directory, dest, data)
        logger.info(f"Stored {file_id}{ext} ({len(data)} bytes) in session {session_id}")
        return dest

    def store_thumbnail(self, session_id: str, file_id: str, data: bytes) -> str:
        directory = self.ensure_session_dir(session_id)
        dest = self.thumbnail_path(session_id, file_id)
        self._atomic_write(directory, dest, data)
        return dest

    # --- reads ---
    def resolve(self, session_id: str, file_id: str, ext: Optional[str] = None) -> Optional[ResolvedFile]:
        """Find the stored file for ``file_id`` whatever its extension. Returns None when absent."""
        try:
            directory = self.session_dir(session_id)
            self._check_id(file_id)
        except InvalidRequest:
            return None
        if not os.path.isdir(directory):
            return None

        candidates = ([ext] if ext else []) + KNOWN_EXTENSIONS
        for candidate in candidates:
            path = os.path.join(directory, f"{file_id}{candidate}")
            if os.path.isfile(path):
                return ResolvedFile(path=path, ext=candidate.lower())

        # Unknown extension: prefix scan. Only an extension may follow the id, so
        # thumbnails and version files never answer for their artifact.
        try:
            names = sorted(os.listdir(directory))
        except OSError:
            return None
        for name in names:
            rest = name[len(file_id):]
            if not name.startswith(file_id) or not rest.startswith(".") or THUMB_SUFFIX in rest:
                continue
            return ResolvedFile(path=os.path.join(directory, name), ext=rest.lower())
        return None

    def resolve_thumbnail(self, session_id: str, file_id: str) -> Optional[ResolvedFile]:
        try:
            path = self.thumbnail_path(session_id, file_id)
        except InvalidRequest:
            return None
        if os.path.isfile(path):
            return ResolvedFile(path=path, ext=THUMB_EXT)
        return None

    def read(self, session_id: str, file_id: str) -> ResolvedFile:
        resolved = self.resolve(session_id, file_id)
        if resolved is None:
            raise MissingArtifact(f"Image not found: {file_id}")
        return resolved

    def list_files(self, session_id: str) -> List[str]:
        directory = self.session_dir(session_id)
        if not os.path.isdir(directory):
            return []
        return sorted(n for n in os.listdir(directory) if not n.startswith("."))

    # --- deletes ---
    def delete(self, session_id: str, file_id: str) -> List[str]:
        """Remove the artifact, its thumbnail and every ``{id}_v*`` version. Idempotent."""
        try:
            directory = self.session_dir(session_id)
            self._check_id(file_id)
        except InvalidRequest:
            return []
        if not os.path.isdir(directory):
            return []

        removed = []
        version_prefix = f"{file_id}{VERSION_MARKER}"
        thumb_name = f"{file_id}{THUMB_SUFFIX}{THUMB_EXT}"
        for name in os.listdir(directory):
            stem, _ext = os.path.splitext(name)
            if stem == file_id or name == thumb_name or name.startswith(version_prefix):
                try:
                    os.remove(os.path.join(directory, name))
                    removed.append(name)
                except FileNotFoundError:
                    pass
        if removed:
            logger.info(f"Deleted {len(removed)} file(s) for {file_id} in session {session_id}")
        return removed

    def remove_file(self, session_id: str, file_id: str, ext: str) -> None:
        try:
            os.remove(self.file_path(session_id, file_id, ext))
        except FileNotFoundError:
            pass

    def delete_session(self, session_id: str) -> None:
        directory = self.session_dir(session_id)
        if os.path.isdir(directory):
            shutil.rmtree(directory, ignore_errors=True)
            logger.info(f"Removed session directory for {session_id}")
