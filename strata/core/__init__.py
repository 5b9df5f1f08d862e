from .builder import ConfigurationBuilder
from .configuration import Configuration
from .dynamic import DynamicValue
from .filters import Filter, FilterChain
from .mutable import MutableConfiguration
from .registry import PropertySourceRegistry
from .source import MutablePropertySource, PropertySource
from .types import ChangeRequest, PropertyValue

__all__ = [
    "ConfigurationBuilder",
    "Configuration",
    "DynamicValue",
    "Filter",
    "FilterChain",
    "MutableConfiguration",
    "PropertySourceRegistry",
    "MutablePropertySource",
    "PropertySource",
    "ChangeRequest",
    "PropertyValue",
]
