"""Property source implementations.

In-memory and environment sources plus mutable YAML file and redis
sources. Format-specific parsing beyond these lives outside the core.
"""

from .environment import EnvironmentPropertySource
from .memory import InMemoryPropertySource
from .redis_kv import RedisPropertySource
from .yaml_file import YamlFilePropertySource

__all__ = [
    "EnvironmentPropertySource",
    "InMemoryPropertySource",
    "RedisPropertySource",
    "YamlFilePropertySource",
]
