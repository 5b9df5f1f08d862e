"""Ordered registry of property sources backed by immutable snapshots."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Tuple

from loguru import logger

from .converters import Converter, ConverterRegistry
from .merge import CombinationPolicy, merge_sources, override_policy
from .source import PropertySource, effective_ordinal
from .types import PropertyValue


@dataclass(frozen=True)
class RankedSource:
    """A source together with the ordinal it was sorted by."""

    source: PropertySource
    ordinal: int

    @property
    def name(self) -> str:
        return self.source.name


@dataclass(frozen=True)
class ConfigurationContext:
    """Immutable snapshot of everything a lookup needs.

    Attributes:
        ranked: Sources ordered by ``(ordinal, name)`` ascending.
        converters: Converters by target type.
        combination_policy: Policy used for bulk reads.
    """

    ranked: Tuple[RankedSource, ...] = ()
    converters: ConverterRegistry = field(default_factory=ConverterRegistry)
    combination_policy: CombinationPolicy = override_policy

    @property
    def sources(self) -> Tuple[PropertySource, ...]:
        return tuple(r.source for r in self.ranked)

    def precedence_order(self) -> Tuple[PropertySource, ...]:
        """Sources in lookup order: highest ordinal first, ties by name."""
        ordered = sorted(self.ranked, key=lambda r: (-r.ordinal, r.name))
        return tuple(r.source for r in ordered)


def rank_sources(sources: Iterable[PropertySource]) -> Tuple[RankedSource, ...]:
    ranked = [RankedSource(s, effective_ordinal(s)) for s in sources]
    ranked.sort(key=lambda r: (r.ordinal, r.name))
    return tuple(ranked)


class PropertySourceRegistry:
    """Holds the current ``ConfigurationContext`` and swaps it atomically.

    Writers are serialised by a lock and publish a completely built snapshot
    with a single reference assignment. Readers never lock: they grab the
    current snapshot once and work on it.
    """

    def __init__(self, context: Optional[ConfigurationContext] = None):
        self._context = context or ConfigurationContext()
        self._write_lock = threading.Lock()

    @property
    def context(self) -> ConfigurationContext:
        return self._context

    def add_sources(self, *sources: PropertySource) -> None:
        """Register sources and re-sort.

        A source whose name is already registered replaces the old one; of
        several sources with the same name in one call the last one is kept.
        """
        incoming = {s.name: s for s in sources}
        names = set(incoming)
        with self._write_lock:
            kept = [r.source for r in self._context.ranked if r.name not in names]
            ranked = rank_sources(kept + list(incoming.values()))
            self._context = replace(self._context, ranked=ranked)
        logger.debug(f"Registered sources {sorted(names)}")

    def remove_sources(self, *names: str) -> None:
        with self._write_lock:
            ranked = tuple(r for r in self._context.ranked if r.name not in names)
            self._context = replace(self._context, ranked=ranked)

    def refresh_ordinals(self) -> None:
        """Re-read self-declared ordinals, e.g. after a source changed."""
        with self._write_lock:
            self._context = replace(
                self._context, ranked=rank_sources(self._context.sources)
            )

    def add_converter(self, target_type: Any, converter: Converter) -> None:
        with self._write_lock:
            self._context = replace(
                self._context,
                converters=self._context.converters.with_converter(target_type, converter),
            )

    def set_combination_policy(self, policy: CombinationPolicy) -> None:
        with self._write_lock:
            self._context = replace(self._context, combination_policy=policy)

    def get_sources(self) -> Tuple[PropertySource, ...]:
        """Sources ordered by ordinal ascending, ties by name ascending."""
        return self._context.sources

    def get_source(self, name: str) -> Optional[PropertySource]:
        for source in self._context.sources:
            if source.name == name:
                return source
        return None

    def resolve(self, key: str, context: Optional[ConfigurationContext] = None) -> Optional[PropertyValue]:
        """Return the most significant value for ``key``, or None.

        A source raising while being queried is logged and treated as not
        holding the key.
        """
        snapshot = context or self._context
        for source in snapshot.precedence_order():
            try:
                value = source.get(key)
            except Exception as e:
                logger.warning(f"Source {source.name} failed to resolve '{key}': {e}")
                continue
            if value is not None:
                return value
        return None

    def properties(self, context: Optional[ConfigurationContext] = None) -> Dict[str, PropertyValue]:
        """Combine all scannable sources into one mapping."""
        snapshot = context or self._context
        least_first = reversed(snapshot.precedence_order())
        return merge_sources(least_first, snapshot.combination_policy)
