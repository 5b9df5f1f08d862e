from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import redis

from ..core.source import DEFAULT_ORDINAL, MutablePropertySource
from ..core.types import ChangeRequest, PropertyValue


class RedisPropertySource(MutablePropertySource):
    """Mutable source backed by plain redis string keys.

    Keys are stored as ``{prefix}{key}``. Writes of one change request go
    through a single pipeline.
    """

    def __init__(
        self,
        uri: str,
        name: Optional[str] = None,
        prefix: str = "",
        ordinal: int = DEFAULT_ORDINAL,
        client: Optional[Any] = None,
    ):
        self.uri = uri
        self.client = client or redis.Redis.from_url(uri, decode_responses=True)
        self.name = name or f"redis:{uri}"
        self.prefix = prefix
        self.ordinal = ordinal
        self.scannable = True

    def _prefixed(self, key: str) -> str:
        return f"{self.prefix}{key}" if self.prefix else key

    def _unprefixed(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix):
            return key[len(self.prefix) :]
        return key

    def get(self, key: str) -> Optional[PropertyValue]:
        value = self.client.get(self._prefixed(key))
        if value is None:
            return None
        return PropertyValue(key, value, self.name)

    def properties(self) -> Mapping[str, PropertyValue]:
        keys = list(self.client.scan_iter(match=self._prefixed("*")))
        kv: Dict[str, PropertyValue] = {}
        if keys:
            values = self.client.mget(keys)
            for k, v in zip(keys, values):
                if v is None:
                    continue
                flat_key = self._unprefixed(k)
                kv[flat_key] = PropertyValue(flat_key, v, self.name)
        return kv

    def apply_change(self, request: ChangeRequest) -> None:
        pipe = self.client.pipeline()
        for key in request.removes:
            pipe.delete(self._prefixed(key))
        for key, value in request.puts.items():
            pipe.set(self._prefixed(key), value)
        pipe.execute()
