"""Source protocols and ordinal handling for configuration sources."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from loguru import logger

from .types import ChangeRequest, PropertyValue

# Reserved keys a source may use to declare its own ordinal.
ORDINAL_KEYS = ("_ordinal", "STRATA_ORDINAL")

DEFAULT_ORDINAL = 0


@runtime_checkable
class PropertySource(Protocol):
    """Protocol defining the interface for configuration sources.

    Sources are created by collaborators (file formats, remote backends,
    adapters) and registered with a ``PropertySourceRegistry``. Identity is
    by ``name``.
    """

    name: str
    ordinal: int
    scannable: bool

    def get(self, key: str) -> Optional[PropertyValue]:
        """Get a single value by key.

        Args:
            key: Configuration key to retrieve.

        Returns:
            The value if the source holds the key, None otherwise.
        """
        ...

    def properties(self) -> Mapping[str, PropertyValue]:
        """Get all values of the source in the source's own order.

        Non-scannable sources may return an empty mapping.
        """
        ...


@runtime_checkable
class MutablePropertySource(PropertySource, Protocol):
    """A source that can apply change requests to its backing store."""

    def apply_change(self, request: ChangeRequest) -> None:
        """Apply all puts and removes of ``request``.

        Raises:
            Exception: Any failure; change propagation policies record it.
        """
        ...


def effective_ordinal(source: PropertySource) -> int:
    """Return the ordinal a source is sorted by.

    A source can override its assigned ordinal by holding one of the reserved
    ``ORDINAL_KEYS``. Values that do not parse as an integer are logged and
    ignored.
    """
    assigned = getattr(source, "ordinal", DEFAULT_ORDINAL)
    for key in ORDINAL_KEYS:
        try:
            declared = source.get(key)
        except Exception as e:
            logger.warning(f"Failed to read ordinal from source {source.name}: {e}")
            return assigned
        if declared is None or declared.value is None:
            continue
        try:
            return int(declared.value.strip())
        except ValueError:
            logger.warning(
                f"Ignoring non-integer ordinal {declared.value!r} declared by "
                f"source {source.name}, using {assigned}"
            )
            return assigned
    return assigned
