from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from ..core.source import DEFAULT_ORDINAL, MutablePropertySource
from ..core.types import ChangeRequest, PropertyValue


def iter_hierarchical(
    data: Dict[str, Any],
    parent: str = "",
    depth: Optional[int] = None,
) -> Iterator[Tuple[str, Any]]:
    """Flatten nested dictionaries using dot-notation.

    Args:
        data: Dictionary to flatten.
        parent: Parent key prefix for recursion.
        depth: Maximum depth to flatten (None for unlimited).

    Yields:
        Tuples of (flattened_key, value).
    """
    if depth is not None and depth < 0:
        return

    for key, value in data.items():
        full_key = str(key) if not parent else f"{parent}.{key}"
        if isinstance(value, dict) and (depth is None or depth > 0):
            next_depth = None if depth is None else depth - 1
            yield from iter_hierarchical(value, full_key, next_depth)
        else:
            yield full_key, value


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        # serialize structured leaves to JSON for stability
        return json.dumps(value, separators=(",", ":"))
    return str(value)


class YamlFilePropertySource(MutablePropertySource):
    """Mutable source reading a YAML file flattened to dot keys.

    Changes are written back into the nested structure of the file. The
    file is re-read on ``reload()`` and after every applied change.
    """

    def __init__(
        self,
        path: Union[str, Path],
        name: Optional[str] = None,
        ordinal: int = DEFAULT_ORDINAL,
        depth: Optional[int] = None,
        writable: bool = True,
    ):
        self.path = Path(path)
        self.name = name or f"yaml:{self.path.name}"
        self.ordinal = ordinal
        self.depth = depth
        self.writable = writable
        self.scannable = True
        self._lock = threading.Lock()
        self._cache: Dict[str, PropertyValue] = {}
        self.reload()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data

    def reload(self) -> None:
        flattened = iter_hierarchical(self._read(), depth=self.depth)
        cache = {
            key: PropertyValue(key, _to_text(value), self.name, {"_file": str(self.path)})
            for key, value in flattened
        }
        self._cache = cache

    def get(self, key: str) -> Optional[PropertyValue]:
        return self._cache.get(key)

    def properties(self) -> Mapping[str, PropertyValue]:
        return dict(self._cache)

    def apply_change(self, request: ChangeRequest) -> None:
        if not self.writable:
            raise PermissionError(f"Source {self.name} is not writable")

        def set_nested(d: Dict[str, Any], path: List[str], value: Any) -> None:
            for part in path[:-1]:
                if part not in d or not isinstance(d[part], dict):
                    d[part] = {}
                d = d[part]
            d[path[-1]] = value

        def unset_nested(d: Dict[str, Any], path: List[str]) -> None:
            for part in path[:-1]:
                if part not in d or not isinstance(d[part], dict):
                    return
                d = d[part]
            d.pop(path[-1], None)

        with self._lock:
            nested = self._read()
            for key in request.removes:
                unset_nested(nested, key.split("."))
            for key, value in request.puts.items():
                set_nested(nested, key.split("."), value)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.safe_dump(nested, f, sort_keys=False)
            self.reload()

    def __repr__(self) -> str:
        return f"YamlFilePropertySource(path={str(self.path)!r}, ordinal={self.ordinal})"
