from __future__ import annotations

import threading
from typing import Any, Dict, Mapping, Optional

from ..core.source import DEFAULT_ORDINAL, MutablePropertySource
from ..core.types import ChangeRequest, PropertyValue


class InMemoryPropertySource(MutablePropertySource):
    """Mutable source backed by a dictionary."""

    def __init__(
        self,
        name: str,
        data: Optional[Mapping[str, Any]] = None,
        ordinal: int = DEFAULT_ORDINAL,
        scannable: bool = True,
    ):
        self.name = name
        self.ordinal = ordinal
        self.scannable = scannable
        self._data: Dict[str, str] = {k: str(v) for k, v in (data or {}).items()}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[PropertyValue]:
        value = self._data.get(key)
        if value is None:
            return None
        return PropertyValue(key, value, self.name)

    def properties(self) -> Mapping[str, PropertyValue]:
        if not self.scannable:
            return {}
        with self._lock:
            items = list(self._data.items())
        return {k: PropertyValue(k, v, self.name) for k, v in items}

    def apply_change(self, request: ChangeRequest) -> None:
        with self._lock:
            for key in request.removes:
                self._data.pop(key, None)
            self._data.update(request.puts)

    def __repr__(self) -> str:
        return f"InMemoryPropertySource(name={self.name!r}, ordinal={self.ordinal})"
