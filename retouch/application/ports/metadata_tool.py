from typing import Any, Dict, Optional, Protocol, Sequence


class MetadataTool(Protocol):
    def read_tags(self, path: str) -> Dict[str, Any]:
        ...

    def write_tags(self, path: str, assignments: Sequence[str]) -> None:
        ...

    def copy_tags_from_file(self, source_path: str, target_path: str, overrides: Optional[Dict[str, Any]] = None) -> None:
        ...
