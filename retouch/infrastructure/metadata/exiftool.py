import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from ...application.ports.metadata_tool import MetadataTool
from ..tools.process import ToolError, ToolRunner

logger = logging.getLogger(__name__)


def read_cmd(exe: str, path: str) -> List[str]:
    return [exe, "-json", "-a", "-G1", "-n", "-b", "-m", "-charset", "filename=UTF8", path]


def write_cmd(exe: str, path: str, assignments: Sequence[str]) -> List[str]:
    return [exe, "-overwrite_original", "-charset", "filename=UTF8", *assignments, path]


def copy_cmd(exe: str, source: str, target: str, overrides: Optional[Dict[str, Any]] = None) -> List[str]:
    args = [exe, "-overwrite_original", "-charset", "filename=UTF8", "-tagsfromfile", source, "-all:all"]
    for tag, value in (overrides or {}).items():
        args.append(f"-{tag}={value}")
    args.append(target)
    return args


class ExifTool(MetadataTool):
    """ExifTool CLI behind the metadata tool contract."""

    def __init__(self, runner: ToolRunner, exe: str = "exiftool") -> None:
        self.runner = runner
        self.exe = exe

    def read_tags(self, path: str) -> Dict[str, Any]:
        out = self.runner.run(read_cmd(self.exe, path))
        try:
            data = json.loads(out.decode("utf-8", "replace"))
        except ValueError as e:
            raise ToolError(f"exiftool returned invalid JSON: {e}") from e
        if not data:
            return {}
        entry = dict(data[0])
        entry.pop("SourceFile", None)
        return entry

    def write_tags(self, path: str, assignments: Sequence[str]) -> None:
        if not assignments:
            return
        self.runner.run(write_cmd(self.exe, path, assignments))

    def copy_tags_from_file(self, source_path: str, target_path: str, overrides: Optional[Dict[str, Any]] = None) -> None:
        self.runner.run(copy_cmd(self.exe, source_path, target_path, overrides))
