"""Type definitions for the Strata configuration system."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .errors import ChangeApplicationError, ConfigError

METADATA_PREFIX = "_"


def is_metadata_key(key: str) -> bool:
    """Return True for keys in the reserved metadata namespace."""
    return key.startswith(METADATA_PREFIX)


@dataclass(frozen=True)
class PropertyValue:
    """A single configuration entry as provided by a source.

    Attributes:
        key: Configuration key.
        value: Raw string value, None when the source explicitly holds no value.
        source: Name of the source this value came from.
        metadata: Additional string entries describing the value.
    """

    key: str
    value: Optional[str]
    source: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_metadata(self) -> bool:
        return is_metadata_key(self.key)

    def with_value(self, value: Optional[str]) -> "PropertyValue":
        return replace(self, value=value)

    def with_metadata(self, **entries: str) -> "PropertyValue":
        merged = dict(self.metadata)
        merged.update(entries)
        return replace(self, metadata=merged)


@dataclass(frozen=True)
class FilterContext:
    """Information handed to filters alongside the value being filtered.

    Attributes:
        key: Key currently being filtered.
        snapshot: All values of the read in progress (only the value itself
            for single-key reads).
        single_value: True for ``get(key)`` style access, False for bulk reads.
    """

    key: str
    snapshot: Mapping[str, PropertyValue] = field(default_factory=dict)
    single_value: bool = True


class UpdatePolicy(Enum):
    """How a dynamic value reacts to changes in the underlying configuration."""

    EXPLICIT = "explicit"
    IMMEDIATE = "immediate"
    LOG_ONLY = "log_only"
    NEVER = "never"


class ValueState(Enum):
    NO_VALUE = "no_value"
    LOADED = "loaded"
    STALE = "stale"
    UPDATING = "updating"


@dataclass(frozen=True)
class ValueChange:
    """Event published when a dynamic value commits a new value."""

    owner: Any
    property_name: str
    old_value: Any
    new_value: Any


class ChangeRequest:
    """A batch of pending writes, identified by a random id.

    Puts and removes on the same key cancel each other so the request always
    describes the final intent per key. A request is consumed once applied and
    rejects further use.
    """

    def __init__(self, request_id: Optional[str] = None):
        self.id = request_id or str(uuid.uuid4())
        self._puts: Dict[str, str] = {}
        self._removes: Set[str] = set()
        self._consumed = False

    @property
    def puts(self) -> Mapping[str, str]:
        return MappingProxyType(self._puts)

    @property
    def removes(self) -> frozenset:
        return frozenset(self._removes)

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def is_empty(self) -> bool:
        return not self._puts and not self._removes

    def keys(self) -> List[str]:
        """All keys touched by this request, sorted."""
        return sorted(set(self._puts) | self._removes)

    def put(self, key: str, value: Any) -> "ChangeRequest":
        self._check_open()
        self._removes.discard(key)
        self._puts[key] = str(value)
        return self

    def put_all(self, values: Mapping[str, Any]) -> "ChangeRequest":
        for key, value in values.items():
            self.put(key, value)
        return self

    def remove(self, *keys: str) -> "ChangeRequest":
        return self.remove_all(keys)

    def remove_all(self, keys: Iterable[str]) -> "ChangeRequest":
        self._check_open()
        for key in keys:
            self._puts.pop(key, None)
            self._removes.add(key)
        return self

    def mark_consumed(self) -> None:
        self._check_open()
        self._consumed = True

    def _check_open(self) -> None:
        if self._consumed:
            raise ConfigError(
                f"Change request {self.id} has already been stored",
                {"request_id": self.id},
            )

    def __repr__(self) -> str:
        return (
            f"ChangeRequest(id={self.id!r}, puts={sorted(self._puts)!r}, "
            f"removes={sorted(self._removes)!r})"
        )


@dataclass
class ChangeOutcome:
    """Aggregate result of applying a change request to a set of sources.

    Attributes:
        request_id: Id of the applied change request.
        applied: Names of sources that accepted (part of) the change.
        failures: Source name to the exception it raised.
        skipped: Names of mutable sources the policy deliberately left alone.
    """

    request_id: str
    applied: List[str] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def partial(self) -> bool:
        return bool(self.failures) and bool(self.applied)

    def raise_for_failures(self) -> None:
        if self.failures:
            raise ChangeApplicationError(self.request_id, self.failures)
