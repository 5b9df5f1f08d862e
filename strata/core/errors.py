"""Exception hierarchy for the Strata configuration system.

Every error carries a human readable message, a machine readable error code
and a details mapping so callers can log or serialize failures uniformly.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class StrataError(Exception):
    """Base exception for all Strata errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for logging or reporting."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ConfigError(StrataError):
    """Raised when the configuration system itself is set up incorrectly.

    Examples are an empty key list for a dynamic value, a builder used twice
    or a change request applied after it was consumed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


class ExpressionError(ConfigError):
    """Base class for placeholder evaluation failures."""

    def __init__(self, message: str, expression: str):
        super().__init__(message, {"expression": expression})
        self.expression = expression


class ExpressionSyntaxError(ExpressionError):
    """A placeholder was opened with ``${`` but never closed."""


class ExpressionDepthError(ExpressionError):
    """Evaluation did not settle within the allowed number of passes."""

    def __init__(self, expression: str, max_passes: int):
        super().__init__(
            f"Expression did not resolve within {max_passes} passes "
            f"(circular reference?): {expression}",
            expression,
        )
        self.max_passes = max_passes


class UnresolvedExpressionError(ExpressionError):
    """No resolver produced a value for a placeholder in strict mode."""

    def __init__(self, expression: str):
        super().__init__(f"Unresolvable expression: ${{{expression}}}", expression)


class PropertyNotFoundError(StrataError, KeyError):
    """No source provides a value for the requested key."""

    def __init__(self, key: str):
        StrataError.__init__(
            self, f"No value for key '{key}'", "PROPERTY_NOT_FOUND", {"key": key}
        )
        self.key = key

    def __str__(self) -> str:
        return self.message


class ConversionError(StrataError, ValueError):
    """A value is present but cannot be converted to the target type."""

    def __init__(self, key: str, value: Optional[str], target_type: Any, cause: Optional[Exception] = None):
        type_name = getattr(target_type, "__name__", repr(target_type))
        StrataError.__init__(
            self,
            f"Cannot convert value {value!r} of key '{key}' to {type_name}",
            "CONVERSION_FAILED",
            {"key": key, "value": value, "target_type": type_name},
        )
        self.key = key
        self.value = value
        self.target_type = target_type
        self.__cause__ = cause


class ChangeApplicationError(StrataError):
    """One or more sources failed to apply a change request."""

    def __init__(self, request_id: str, failures: Mapping[str, Exception]):
        names = ", ".join(sorted(failures))
        super().__init__(
            f"Change request {request_id} failed on: {names}",
            "CHANGE_APPLICATION_FAILED",
            {
                "request_id": request_id,
                "failures": {name: str(exc) for name, exc in failures.items()},
            },
        )
        self.request_id = request_id
        self.failures = dict(failures)
