"""Batched configuration changes and how they reach mutable sources."""

from __future__ import annotations

import threading
from typing import Any, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from loguru import logger

from .configuration import Configuration
from .events import ChangeListener, ConfigurationChange
from .source import MutablePropertySource, PropertySource
from .types import ChangeOutcome, ChangeRequest


class ChangePropagationPolicy(Protocol):
    """Decides which sources receive which part of a change request."""

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        ...


def mutable_sources(sources: Iterable[PropertySource]) -> List[MutablePropertySource]:
    return [s for s in sources if isinstance(s, MutablePropertySource)]


def _apply(target: MutablePropertySource, request: ChangeRequest, outcome: ChangeOutcome) -> None:
    try:
        target.apply_change(request)
    except Exception as e:
        logger.warning(f"Failed to apply change {request.id} to source {target.name}: {e}")
        outcome.failures[target.name] = e
    else:
        outcome.applied.append(target.name)


def _sub_request(request: ChangeRequest, keys: Iterable[str]) -> ChangeRequest:
    """A request with the same id restricted to ``keys``."""
    sub = ChangeRequest(request.id)
    for key in keys:
        if key in request.puts:
            sub.put(key, request.puts[key])
        else:
            sub.remove(key)
    return sub


class ApplyToAll:
    """Apply every change to every mutable source.

    A failing source does not stop the others; all failures are reported in
    the outcome.
    """

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        outcome = ChangeOutcome(request.id)
        for target in mutable_sources(sources):
            _apply(target, request, outcome)
        return outcome


class ApplyToFirstMatching:
    """Apply each key to the most significant mutable source holding it.

    Keys that no mutable source holds yet go to ``default_source`` (a source
    name), or to the most significant mutable source if no default is set.
    ``sources`` must be given in precedence order.
    """

    def __init__(self, default_source: Optional[str] = None):
        self.default_source = default_source

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        outcome = ChangeOutcome(request.id)
        targets = mutable_sources(sources)
        if not targets:
            return outcome

        default = self._default_target(targets)
        assignments: dict = {}
        for key in request.keys():
            target = next((t for t in targets if _holds(t, key)), default)
            if target is None:
                logger.warning(f"No mutable source for key '{key}' of change {request.id}")
                continue
            assignments.setdefault(target.name, (target, []))[1].append(key)

        for target in targets:
            if target.name not in assignments:
                outcome.skipped.append(target.name)
                continue
            _, keys = assignments[target.name]
            _apply(target, _sub_request(request, keys), outcome)
        return outcome

    def _default_target(self, targets: List[MutablePropertySource]) -> Optional[MutablePropertySource]:
        if self.default_source is None:
            return targets[0]
        for target in targets:
            if target.name == self.default_source:
                return target
        logger.warning(f"Default source {self.default_source} is not a registered mutable source")
        return None


def _holds(source: PropertySource, key: str) -> bool:
    try:
        return source.get(key) is not None
    except Exception as e:
        logger.warning(f"Source {source.name} failed to look up '{key}': {e}")
        return False


class ApplyMostSignificantOnly:
    """Apply the whole change to the most significant mutable source."""

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        outcome = ChangeOutcome(request.id)
        targets = mutable_sources(sources)
        if targets:
            _apply(targets[0], request, outcome)
            outcome.skipped.extend(t.name for t in targets[1:])
        return outcome


class ApplySelective:
    """Apply the whole change to the named mutable sources only."""

    def __init__(self, *source_names: str):
        self.source_names = frozenset(source_names)

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        outcome = ChangeOutcome(request.id)
        for target in mutable_sources(sources):
            if target.name in self.source_names:
                _apply(target, request, outcome)
            else:
                outcome.skipped.append(target.name)
        return outcome


class ReadOnly:
    """Reject all changes."""

    def apply_change(
        self, request: ChangeRequest, sources: Sequence[PropertySource]
    ) -> ChangeOutcome:
        logger.warning(f"Cannot store change {request.id}: prohibited by read-only policy")
        outcome = ChangeOutcome(request.id)
        outcome.skipped.extend(t.name for t in mutable_sources(sources))
        return outcome


class MutableConfiguration:
    """Collects writes into a change request and stores them via a policy.

    Reads are passed through to the underlying configuration and never see
    pending changes.
    """

    def __init__(
        self,
        configuration: Configuration,
        policy: Optional[ChangePropagationPolicy] = None,
    ):
        self.configuration = configuration
        self.policy = policy or ApplyToAll()
        self._request = ChangeRequest()
        self._listeners: List[ChangeListener] = []
        self._lock = threading.Lock()

    @property
    def change_request(self) -> ChangeRequest:
        return self._request

    def put(self, key: str, value: Any) -> "MutableConfiguration":
        self._request.put(key, value)
        return self

    def put_all(self, values: Mapping[str, Any]) -> "MutableConfiguration":
        self._request.put_all(values)
        return self

    def remove(self, *keys: str) -> "MutableConfiguration":
        self._request.remove_all(keys)
        return self

    def remove_all(self, keys: Iterable[str]) -> "MutableConfiguration":
        self._request.remove_all(keys)
        return self

    def rollback(self) -> None:
        """Discard all pending changes."""
        self._request = ChangeRequest()

    def store(self) -> ChangeOutcome:
        """Hand the pending request to the policy and start a new one.

        If change listeners are registered and the stored request changed the
        effective configuration, they receive a ``ConfigurationChange``.

        Returns:
            The aggregate outcome; check ``outcome.ok`` or call
            ``outcome.raise_for_failures()``.
        """
        request = self._request
        request.mark_consumed()
        self._request = ChangeRequest()
        if request.is_empty:
            return ChangeOutcome(request.id)
        before = self.configuration.snapshot() if self._listeners else None
        sources = self.configuration.registry.context.precedence_order()
        outcome = self.policy.apply_change(request, sources)
        if outcome.applied:
            self.configuration.registry.refresh_ordinals()
        logger.debug(
            f"Stored change {request.id}: applied={outcome.applied} "
            f"failed={sorted(outcome.failures)}"
        )
        if before is not None and outcome.applied:
            change = before.diff(self.configuration.snapshot(), request.id)
            if not change.is_empty:
                self._publish(change)
        return outcome

    # ---- change listeners ----
    def add_change_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(self, change: ConfigurationChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                logger.error(f"Error in configuration change listener {listener!r}: {e}")

    # ---- read-through ----
    def get_value(self, key: str, target_type: Any = str) -> Any:
        return self.configuration.get_value(key, target_type)

    def get_optional_value(self, key: str, target_type: Any = str) -> Optional[Any]:
        return self.configuration.get_optional_value(key, target_type)

    def get_property_names(self) -> List[str]:
        return self.configuration.property_names()

    def get_config_sources(self) -> Tuple[PropertySource, ...]:
        return self.configuration.config_sources()
