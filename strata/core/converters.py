"""Converters turning raw string values into typed values."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from .errors import ConversionError

Converter = Callable[[str], Any]

_TRUE = {"true", "yes", "on", "1", "y"}
_FALSE = {"false", "no", "off", "0", "n"}


def _to_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _to_decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValueError(f"not a decimal: {raw!r}") from e


DEFAULT_CONVERTERS: Mapping[Any, Converter] = MappingProxyType(
    {
        str: str,
        int: lambda raw: int(raw.strip()),
        float: lambda raw: float(raw.strip()),
        bool: _to_bool,
        Decimal: _to_decimal,
        Path: Path,
    }
)


class ConverterRegistry:
    """Immutable mapping of target types to converters.

    Registering a converter returns a new registry so configuration snapshots
    holding the old one never change underneath their readers. Types without
    a registered converter are validated with pydantic.
    """

    def __init__(self, converters: Optional[Mapping[Any, Converter]] = None):
        self._converters: Dict[Any, Converter] = dict(DEFAULT_CONVERTERS)
        if converters:
            self._converters.update(converters)

    def with_converter(self, target_type: Any, converter: Converter) -> "ConverterRegistry":
        merged = dict(self._converters)
        merged[target_type] = converter
        return ConverterRegistry(merged)

    def __contains__(self, target_type: Any) -> bool:
        return target_type in self._converters

    @property
    def types(self) -> tuple:
        return tuple(self._converters)

    def convert(self, key: str, raw: str, target_type: Any) -> Any:
        """Convert ``raw`` to ``target_type``.

        Raises:
            ConversionError: If the value cannot be converted.
        """
        converter = self._converters.get(target_type)
        try:
            if converter is not None:
                return converter(raw)
            return _validate(target_type, raw)
        except (ValueError, TypeError) as e:
            raise ConversionError(key, raw, target_type, e) from e


def _validate(target_type: Any, raw: str) -> Any:
    adapter = TypeAdapter(target_type)
    try:
        return adapter.validate_python(raw)
    except ValidationError:
        # Structured targets (lists, mappings, models) are written as JSON.
        return adapter.validate_json(raw)
