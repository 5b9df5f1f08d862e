"""Combination logic for values of the same key from multiple sources."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Optional

from loguru import logger

from .source import PropertySource
from .types import PropertyValue

CombinationPolicy = Callable[[Optional[PropertyValue], PropertyValue], PropertyValue]


def override_policy(
    current: Optional[PropertyValue], candidate: PropertyValue
) -> PropertyValue:
    """Default policy: the more significant source replaces the value."""
    return candidate


class ListCombinationPolicy:
    """Join the values of all sources into one separated list.

    Values are joined from least to most significant source. The resulting
    value records the contributing sources in its ``_sources`` metadata.
    """

    def __init__(self, separator: str = ","):
        self.separator = separator

    def __call__(
        self, current: Optional[PropertyValue], candidate: PropertyValue
    ) -> PropertyValue:
        if current is None or current.value is None:
            return candidate.with_metadata(_sources=candidate.source)
        if candidate.value is None:
            return current
        sources = current.metadata.get("_sources", current.source)
        return candidate.with_value(
            f"{current.value}{self.separator}{candidate.value}"
        ).with_metadata(_sources=f"{sources}{self.separator}{candidate.source}")


def merge_sources(
    sources: Iterable[PropertySource],
    policy: CombinationPolicy = override_policy,
) -> Dict[str, PropertyValue]:
    """Merge the values of multiple sources into a single mapping.

    Sources are merged in order, least significant first, so later sources
    override or extend earlier ones according to ``policy``. A source that
    fails to list its values is logged and skipped.

    Args:
        sources: Sources ordered from least to most significant.
        policy: How to combine a key's existing value with a new one.

    Returns:
        Mapping of key to the combined value.
    """
    effective: Dict[str, PropertyValue] = {}

    for source in sources:
        if not getattr(source, "scannable", True):
            continue
        try:
            payload = source.properties()
        except Exception as e:
            logger.warning(f"Skipping source {source.name}, listing properties failed: {e}")
            continue
        for key, value in payload.items():
            effective[key] = policy(effective.get(key), value)

    return effective
