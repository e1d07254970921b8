"""Blocking invocation of external command-line tools.

Every call takes an explicit argument vector and runs without a shell, so
paths and tag values are passed as opaque arguments. Interchange files live
in a private scratch directory that is removed on every exit path.
"""
import logging
import shutil
import subprocess
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from ...exceptions import RetouchError, ToolUnavailable

logger = logging.getLogger(__name__)


class ToolError(RetouchError):
    """The tool ran and exited with a non-zero status."""

    kind = "tool_error"
    status_code = 502

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ToolTimeout(ToolError):
    kind = "tool_timeout"


class ToolRunner:
    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> bytes:
        limit = timeout if timeout is not None else self.timeout
        args: List[str] = [str(a) for a in argv]
        logger.debug(f"Running tool: {args}")
        try:
            # subprocess.run kills the child when the timeout expires
            proc = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                shell=False,
                timeout=limit,
            )
        except FileNotFoundError as e:
            raise ToolUnavailable(f"{args[0]} is not installed or not on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise ToolTimeout(f"{Path(args[0]).name} timed out after {limit:.0f}s") from e

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", "ignore").strip()
            raise ToolError(
                f"{Path(args[0]).name} exited with status {proc.returncode}: {stderr}",
                returncode=proc.returncode,
                stderr=stderr,
            )
        return proc.stdout


def which(program: str) -> Optional[str]:
    return shutil.which(program)


def require_tools(programs: Sequence[str]) -> None:
    """Fail fast when any external tool is missing from the host."""
    missing = [p for p in programs if not which(p)]
    if missing:
        raise ToolUnavailable(
            "Required external tools not found: "
            + ", ".join(missing)
            + ". Install them or point EXIFTOOL_PATH / MAGICK_PATH at the binaries."
        )


@contextmanager
def scratch_dir(prefix: str = "retouch-") -> Iterator[Path]:
    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)


def scratch_file(directory: Path, suffix: str) -> Path:
    return directory / f"{uuid.uuid4().hex}{suffix}"
