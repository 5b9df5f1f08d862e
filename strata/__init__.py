"""Strata - layered configuration resolution.

Combine ordinal-ranked property sources into one configuration view with
scoped filtering, placeholder expressions, dynamic values and batched
changes propagated back to mutable sources.
"""

from loguru import logger

from .core.builder import ConfigurationBuilder
from .core.configuration import Configuration, FilteredView
from .core.dynamic import DynamicValue
from .core.errors import (
    ChangeApplicationError,
    ConfigError,
    ConversionError,
    ExpressionDepthError,
    ExpressionError,
    ExpressionSyntaxError,
    PropertyNotFoundError,
    StrataError,
    UnresolvedExpressionError,
)
from .core.events import ConfigurationChange, ConfigurationSnapshot
from .core.expression import ExpressionEvaluator, ExpressionResolver, ResolverRegistry
from .core.filters import Filter, FilterChain, FunctionFilter, RegexPropertyFilter
from .core.mutable import (
    ApplyMostSignificantOnly,
    ApplySelective,
    ApplyToAll,
    ApplyToFirstMatching,
    ChangePropagationPolicy,
    MutableConfiguration,
    ReadOnly,
)
from .core.registry import ConfigurationContext, PropertySourceRegistry
from .core.source import MutablePropertySource, PropertySource
from .core.types import (
    ChangeOutcome,
    ChangeRequest,
    FilterContext,
    PropertyValue,
    UpdatePolicy,
    ValueChange,
    ValueState,
)

# Library logging is opt-in: logger.enable("strata")
logger.disable("strata")

__all__ = [
    "ApplyMostSignificantOnly",
    "ApplySelective",
    "ApplyToAll",
    "ApplyToFirstMatching",
    "ChangeApplicationError",
    "ChangeOutcome",
    "ChangePropagationPolicy",
    "ChangeRequest",
    "ConfigError",
    "Configuration",
    "ConfigurationBuilder",
    "ConfigurationChange",
    "ConfigurationContext",
    "ConfigurationSnapshot",
    "ConversionError",
    "DynamicValue",
    "ExpressionDepthError",
    "ExpressionError",
    "ExpressionEvaluator",
    "ExpressionResolver",
    "ExpressionSyntaxError",
    "Filter",
    "FilterChain",
    "FilterContext",
    "FilteredView",
    "FunctionFilter",
    "MutableConfiguration",
    "MutablePropertySource",
    "PropertyNotFoundError",
    "PropertySource",
    "PropertySourceRegistry",
    "PropertyValue",
    "ReadOnly",
    "RegexPropertyFilter",
    "ResolverRegistry",
    "StrataError",
    "UnresolvedExpressionError",
    "UpdatePolicy",
    "ValueChange",
    "ValueState",
]
