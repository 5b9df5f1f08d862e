"""Frozen configuration snapshots and the changes between them."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from .configuration import Configuration


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Effective values of a configuration at one point in time.

    Attributes:
        properties: Filtered, evaluated values by key.
        frozen_at: Capture time in seconds since the epoch.
        id: Random id distinguishing snapshots with equal content.
    """

    properties: Mapping[str, str]
    frozen_at: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @classmethod
    def capture(cls, configuration: "Configuration") -> "ConfigurationSnapshot":
        return cls(configuration.properties())

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.properties.get(key, default)

    def keys(self) -> List[str]:
        return sorted(self.properties)

    def diff(self, newer: "ConfigurationSnapshot", request_id: Optional[str] = None) -> "ConfigurationChange":
        """Describe how ``newer`` differs from this snapshot."""
        added: Dict[str, str] = {}
        updated: Dict[str, Tuple[str, str]] = {}
        for key, value in newer.properties.items():
            if key not in self.properties:
                added[key] = value
            elif self.properties[key] != value:
                updated[key] = (self.properties[key], value)
        removed = {k: v for k, v in self.properties.items() if k not in newer.properties}
        return ConfigurationChange(self, newer, added, updated, removed, request_id)


@dataclass(frozen=True)
class ConfigurationChange:
    """Keys added, updated and removed between two snapshots.

    Attributes:
        old: Snapshot before the change.
        new: Snapshot after the change.
        added: New keys and their values.
        updated: Changed keys mapped to ``(old_value, new_value)``.
        removed: Vanished keys and their last values.
        request_id: Id of the change request that caused it, if any.
    """

    old: ConfigurationSnapshot
    new: ConfigurationSnapshot
    added: Mapping[str, str] = field(default_factory=dict)
    updated: Mapping[str, Tuple[str, str]] = field(default_factory=dict)
    removed: Mapping[str, str] = field(default_factory=dict)
    request_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.removed)

    def changed_keys(self) -> List[str]:
        return sorted(set(self.added) | set(self.updated) | set(self.removed))

    def is_key_affected(self, key: str) -> bool:
        return key in self.added or key in self.updated or key in self.removed


ChangeListener = Callable[[ConfigurationChange], None]
