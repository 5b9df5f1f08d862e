"""Filtering of configuration values on read."""

from __future__ import annotations

import re
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Pattern,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

from .types import FilterContext, PropertyValue


@runtime_checkable
class Filter(Protocol):
    """Protocol for value filters.

    A filter returns the (possibly changed) value, or None to drop the key.
    """

    def filter_property(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        ...


class FunctionFilter:
    """Adapt a plain ``(key, value) -> value | None`` callable to a Filter."""

    def __init__(self, func: Callable[[str, Optional[str]], Optional[str]]):
        self.func = func

    def filter_property(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        result = self.func(value.key, value.value)
        if result is None:
            return None
        if result == value.value:
            return value
        return value.with_value(result)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FunctionFilter) and other.func == self.func

    def __hash__(self) -> int:
        return hash(self.func)


class RegexPropertyFilter:
    """Keep keys matching any include pattern and no exclude pattern.

    Attributes:
        includes: Patterns a key must match (searched); empty means all keys.
        excludes: Patterns that drop a key when found.
    """

    def __init__(
        self,
        includes: Sequence[Union[str, Pattern[str]]] = (),
        excludes: Sequence[Union[str, Pattern[str]]] = (),
    ):
        self.includes: Tuple[Pattern[str], ...] = tuple(re.compile(p) for p in includes)
        self.excludes: Tuple[Pattern[str], ...] = tuple(re.compile(p) for p in excludes)

    def should_include_key(self, key: str) -> bool:
        if self.includes and not any(p.search(key) for p in self.includes):
            return False
        return not any(p.search(key) for p in self.excludes)

    def filter_property(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        return value if self.should_include_key(value.key) else None


FilterLike = Union[Filter, Callable[[str, Optional[str]], Optional[str]]]


def as_filter(item: FilterLike) -> Filter:
    if isinstance(item, Filter):
        return item
    if callable(item):
        return FunctionFilter(item)
    raise TypeError(f"Not a filter: {item!r}")


class FilterChain:
    """An ordered, explicitly scoped list of filters.

    A chain is owned by one logical operation and passed by reference to the
    reads it performs, so filters installed for one caller never leak into
    another thread's reads. ``cleanup_filter_context`` restores the defaults.
    """

    def __init__(self, filters: Iterable[FilterLike] = (), metadata_filtered: bool = True):
        self._filters: List[Filter] = []
        self.metadata_filtered = metadata_filtered
        for f in filters:
            self.add_filter(f)

    @property
    def filters(self) -> Tuple[Filter, ...]:
        return tuple(self._filters)

    def add_filter(self, item: FilterLike, pos: Optional[int] = None) -> None:
        flt = as_filter(item)
        if flt in self._filters:
            return
        if pos is None:
            self._filters.append(flt)
        else:
            self._filters.insert(pos, flt)

    def remove_filter(self, item: Union[int, FilterLike]) -> Optional[Filter]:
        """Remove a filter by position or by identity.

        Returns:
            The removed filter, or None if it was not in the chain.
        """
        if isinstance(item, int):
            return self._filters.pop(item)
        flt = as_filter(item)
        if flt in self._filters:
            self._filters.remove(flt)
            return flt
        return None

    def clear_filters(self) -> None:
        self._filters.clear()

    def set_filters(self, filters: Iterable[FilterLike]) -> None:
        self._filters.clear()
        for f in filters:
            self.add_filter(f)

    def cleanup_filter_context(self) -> None:
        self._filters.clear()
        self.metadata_filtered = True

    def filter_property(
        self, value: PropertyValue, context: FilterContext
    ) -> Optional[PropertyValue]:
        """Pipe ``value`` through all filters in order; None drops it."""
        current: Optional[PropertyValue] = value
        for flt in self._filters:
            current = flt.filter_property(current, context)
            if current is None:
                return None
        return current

    def filter_single(self, value: Optional[PropertyValue]) -> Optional[PropertyValue]:
        if value is None:
            return None
        context = FilterContext(key=value.key, snapshot={value.key: value}, single_value=True)
        return self.filter_property(value, context)

    def filter_bulk(self, values: Mapping[str, PropertyValue]) -> Dict[str, PropertyValue]:
        """Filter a full property map, dropping metadata keys if enabled."""
        result: Dict[str, PropertyValue] = {}
        for key, value in values.items():
            if self.metadata_filtered and value.is_metadata:
                continue
            context = FilterContext(key=key, snapshot=values, single_value=False)
            filtered = self.filter_property(value, context)
            if filtered is not None:
                result[key] = filtered
        return result
