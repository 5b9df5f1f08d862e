"""Cached, policy-refreshed handles to a single logical property."""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional, Sequence

from loguru import logger

from .configuration import Configuration
from .errors import ConfigError
from .types import UpdatePolicy, ValueChange, ValueState

Listener = Callable[[ValueChange], None]


class DynamicValue:
    """A configuration value that is re-read on demand.

    The value is looked up under the first key of ``keys`` that has a value.
    A re-read stores the new value as *staged*; it only becomes visible
    through ``get()`` once committed. With ``UpdatePolicy.IMMEDIATE`` every
    ``get()`` re-reads and commits on its own.

    Args:
        configuration: Live configuration to read from.
        keys: Candidate keys, first match wins.
        update_policy: How changes are picked up.
        target_type: Optional type the raw value is converted to.
        owner: Object owning this value, reported in change events.
        property_name: Name reported in change events, defaults to the first key.

    Raises:
        ConfigError: If ``keys`` is empty.
    """

    def __init__(
        self,
        configuration: Configuration,
        keys: Sequence[str],
        update_policy: UpdatePolicy = UpdatePolicy.EXPLICIT,
        target_type: Any = None,
        owner: Any = None,
        property_name: Optional[str] = None,
    ):
        if isinstance(keys, str):
            keys = [keys]
        if not keys:
            raise ConfigError("At least one key is required for a dynamic value")
        self.configuration = configuration
        self.keys: tuple = tuple(keys)
        self.update_policy = update_policy
        self.target_type = target_type
        self.owner = owner
        self.property_name = property_name or self.keys[0]
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._committed = self.evaluate_value()
        self._staged = self._committed
        self._state = self._settled_state()

    def evaluate_value(self) -> Any:
        """Read the current value from the configuration without caching it."""
        for key in self.keys:
            if self.target_type is None:
                value = self.configuration.get(key)
            else:
                value = self.configuration.get_optional_value(key, self.target_type)
            if value is not None:
                return value
        return None

    @property
    def state(self) -> ValueState:
        return self._state

    @property
    def new_value(self) -> Any:
        """The staged value waiting for a commit."""
        return self._staged

    def get(self) -> Any:
        if self.update_policy is UpdatePolicy.IMMEDIATE:
            if self.update_value():
                return self.commit_and_get()
        return self._committed

    def update_value(self) -> bool:
        """Re-read the value into the staging slot.

        Returns:
            True if the staged value differs from the committed one. Always
            False under ``UpdatePolicy.NEVER``, which leaves the staging slot
            and the state untouched.
        """
        with self._lock:
            self._state = ValueState.UPDATING
            try:
                staged = self.evaluate_value()
            except Exception:
                self._state = self._settled_state()
                raise
            changed = staged != self._committed
            if self.update_policy is UpdatePolicy.NEVER:
                self._state = self._settled_state()
            else:
                self._staged = staged
                self._state = ValueState.STALE if changed else self._settled_state()

        if changed:
            if self.update_policy is UpdatePolicy.LOG_ONLY:
                logger.info(f"New value for keys {list(self.keys)} detected, but not yet applied")
            elif self.update_policy is UpdatePolicy.NEVER:
                logger.debug(f"New value for keys {list(self.keys)} detected, but ignored")
                return False
        return changed

    def commit(self) -> None:
        """Make the staged value the committed one."""
        self.commit_and_get()

    def commit_and_get(self) -> Any:
        """Commit the staged value and return it.

        Listeners are called after the lock is released.
        """
        with self._lock:
            old = self._committed
            new = self._staged
            self._committed = new
            self._state = self._settled_state()
        if old != new:
            self._publish(old, new)
        return new

    # ---- optional-style accessors over the committed value ----
    def is_present(self) -> bool:
        return self._committed is not None

    def or_else(self, other: Any) -> Any:
        value = self.get()
        return other if value is None else value

    def or_else_get(self, supplier: Callable[[], Any]) -> Any:
        value = self.get()
        return supplier() if value is None else value

    def or_else_throw(self, factory: Callable[[], BaseException]) -> Any:
        value = self.get()
        if value is None:
            raise factory()
        return value

    # ---- listeners ----
    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(self, old: Any, new: Any) -> None:
        event = ValueChange(self.owner, self.property_name, old, new)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in config change listener {listener!r}: {e}")

    def _settled_state(self) -> ValueState:
        return ValueState.NO_VALUE if self._committed is None else ValueState.LOADED

    def __repr__(self) -> str:
        return (
            f"DynamicValue(keys={list(self.keys)!r}, policy={self.update_policy.name}, "
            f"state={self._state.name}, value={self._committed!r})"
        )
