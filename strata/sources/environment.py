"""Read-only source exposing process environment variables."""

from __future__ import annotations

import os
from typing import Mapping, MutableMapping, Optional

from ..core.types import PropertyValue

ENVIRONMENT_ORDINAL = 300


class EnvironmentPropertySource:
    """Expose environment variables as configuration.

    With a ``prefix`` only variables starting with it are visible, and keys
    are reported without the prefix (``APP_DB_HOST`` becomes ``DB_HOST`` for
    prefix ``APP_``).
    """

    def __init__(
        self,
        prefix: str = "",
        name: Optional[str] = None,
        ordinal: int = ENVIRONMENT_ORDINAL,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        self.prefix = prefix
        self.name = name or (f"environment:{prefix}" if prefix else "environment")
        self.ordinal = ordinal
        self.scannable = True
        self._environ = os.environ if environ is None else environ

    def get(self, key: str) -> Optional[PropertyValue]:
        value = self._environ.get(f"{self.prefix}{key}")
        if value is None:
            return None
        return PropertyValue(key, value, self.name)

    def properties(self) -> Mapping[str, PropertyValue]:
        result = {}
        for env_key, value in self._environ.items():
            if not env_key.startswith(self.prefix):
                continue
            key = env_key[len(self.prefix) :]
            if key:
                result[key] = PropertyValue(key, value, self.name)
        return result
