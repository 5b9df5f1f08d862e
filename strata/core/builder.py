"""Builder wiring sources, resolvers and converters into a Configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional, Union

from .config_loader import ConfigLoader, StrataSettings
from .configuration import Configuration
from .converters import Converter
from .errors import ConfigError
from .expression import (
    DEFAULT_MAX_PASSES,
    EnvironmentResolver,
    ExpressionEvaluator,
    ExpressionResolver,
    FileResolver,
    ResolverRegistry,
)
from .merge import CombinationPolicy
from .registry import PropertySourceRegistry
from .source import PropertySource


class ConfigurationBuilder:
    """Collect everything a configuration needs, then build it once.

    Example::

        config = (
            ConfigurationBuilder()
            .add_sources(defaults, EnvironmentPropertySource())
            .add_default_resolvers()
            .build()
        )
    """

    def __init__(self) -> None:
        self._registry = PropertySourceRegistry()
        self._resolvers = ResolverRegistry()
        self._required: List[str] = []
        self._max_passes = DEFAULT_MAX_PASSES
        self._mask_unresolved = True
        self._strict = False
        self._metadata_filtered = True
        self._built = False

    def add_sources(self, *sources: PropertySource) -> "ConfigurationBuilder":
        self._check_not_built()
        self._registry.add_sources(*sources)
        return self

    def add_resolvers(self, *resolvers: ExpressionResolver) -> "ConfigurationBuilder":
        self._check_not_built()
        for resolver in resolvers:
            self._resolvers.add(resolver)
        return self

    def add_default_resolvers(self) -> "ConfigurationBuilder":
        """Register the ``env:`` and ``file:`` resolvers.

        The ``conf:`` resolver is always present.
        """
        return self.add_resolvers(EnvironmentResolver(), FileResolver())

    def require_resolver(self, prefix: str) -> "ConfigurationBuilder":
        """Fail ``build()`` unless a resolver with ``prefix`` is registered."""
        self._check_not_built()
        self._required.append(prefix)
        return self

    def add_converter(self, target_type: Any, converter: Converter) -> "ConfigurationBuilder":
        self._check_not_built()
        self._registry.add_converter(target_type, converter)
        return self

    def set_combination_policy(self, policy: CombinationPolicy) -> "ConfigurationBuilder":
        self._check_not_built()
        self._registry.set_combination_policy(policy)
        return self

    def set_expression_options(
        self,
        max_passes: Optional[int] = None,
        mask_unresolved: Optional[bool] = None,
        strict: Optional[bool] = None,
    ) -> "ConfigurationBuilder":
        self._check_not_built()
        if max_passes is not None:
            self._max_passes = max_passes
        if mask_unresolved is not None:
            self._mask_unresolved = mask_unresolved
        if strict is not None:
            self._strict = strict
        return self

    def set_metadata_filtered(self, filtered: bool) -> "ConfigurationBuilder":
        self._check_not_built()
        self._metadata_filtered = filtered
        return self

    def apply_settings(self, settings: StrataSettings) -> "ConfigurationBuilder":
        """Apply a validated settings model, including declared YAML sources."""
        from ..sources.yaml_file import YamlFilePropertySource

        self.set_expression_options(
            max_passes=settings.expressions.max_passes,
            mask_unresolved=settings.expressions.mask_unresolved,
            strict=settings.expressions.strict,
        )
        self.set_metadata_filtered(settings.filters.metadata_filtered)
        for prefix in settings.required_resolvers:
            self.require_resolver(prefix)
        for declared in settings.sources:
            self.add_sources(
                YamlFilePropertySource(
                    declared.path,
                    name=declared.name,
                    ordinal=declared.ordinal,
                    writable=declared.writable,
                )
            )
        return self

    @classmethod
    def from_settings(
        cls, config_path: Optional[Union[str, Path, ConfigLoader]] = None
    ) -> "ConfigurationBuilder":
        """Create a builder configured from strata.yaml.

        Args:
            config_path: Settings file, a loader, or None to search the
                current directory and its parents.
        """
        loader = config_path if isinstance(config_path, ConfigLoader) else ConfigLoader(config_path)
        return cls().add_default_resolvers().apply_settings(loader.settings())

    def build(self) -> Configuration:
        """Create the configuration.

        Raises:
            ConfigError: If the builder was already used or a required
                resolver is missing.
        """
        self._check_not_built()
        for prefix in self._required:
            if prefix == "conf:":
                continue
            self._resolvers.require(prefix)
        self._built = True
        evaluator = ExpressionEvaluator(
            self._resolvers,
            mask_unresolved=self._mask_unresolved,
            strict=self._strict,
            max_passes=self._max_passes,
        )
        return Configuration(
            self._registry, evaluator, metadata_filtered=self._metadata_filtered
        )

    def _check_not_built(self) -> None:
        if self._built:
            raise ConfigError("ConfigurationBuilder cannot be reused after build()")
