"""Read facade over a source registry, filter chains and expressions."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import PropertyNotFoundError
from .events import ConfigurationSnapshot
from .expression import ConfigResolver, ExpressionEvaluator, ResolverRegistry
from .filters import FilterChain, FilterLike
from .registry import ConfigurationContext, PropertySourceRegistry
from .source import PropertySource
from .types import PropertyValue


class Configuration:
    """Read view combining sources, filters, expressions and converters.

    Every read works on one snapshot of the registry, so a concurrent change
    of the registered sources is either fully visible or not at all.
    """

    def __init__(
        self,
        registry: Optional[PropertySourceRegistry] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        metadata_filtered: bool = True,
    ):
        self.registry = registry or PropertySourceRegistry()
        template = evaluator or ExpressionEvaluator()
        # Own copy of the resolvers, the conf: resolver is bound to this registry.
        resolvers = ResolverRegistry(
            r for r in template.resolvers.resolvers if not isinstance(r, ConfigResolver)
        )
        if resolvers.for_prefix(ConfigResolver.prefix) is None:
            resolvers.add(ConfigResolver(self._raw_value))
        self.evaluator = template.with_resolvers(resolvers)
        # Shared by all threads, must never be mutated.
        self._default_chain = FilterChain(metadata_filtered=metadata_filtered)

    def _raw_value(self, key: str) -> Optional[str]:
        value = self.registry.resolve(key)
        return value.value if value is not None else None

    # ---- single values ----
    def get_property_value(
        self, key: str, chain: Optional[FilterChain] = None
    ) -> Optional[PropertyValue]:
        """Resolve, filter and evaluate a single key.

        Returns:
            The effective value, or None if no source holds the key or a
            filter dropped it.
        """
        context = self.registry.context
        value = chain_or(chain, self._default_chain).filter_single(
            self.registry.resolve(key, context)
        )
        if value is None:
            return None
        return self._evaluate(value)

    def get(self, key: str, default: Optional[str] = None, chain: Optional[FilterChain] = None) -> Optional[str]:
        value = self.get_property_value(key, chain)
        if value is None or value.value is None:
            return default
        return value.value

    def get_value(self, key: str, target_type: Any = str, chain: Optional[FilterChain] = None) -> Any:
        """Get a required value converted to ``target_type``.

        Raises:
            PropertyNotFoundError: If there is no value for ``key``.
            ConversionError: If the value cannot be converted.
        """
        raw = self.get(key, chain=chain)
        if raw is None:
            raise PropertyNotFoundError(key)
        return self.convert(key, raw, target_type)

    def get_optional_value(
        self, key: str, target_type: Any = str, chain: Optional[FilterChain] = None
    ) -> Optional[Any]:
        """Like ``get_value`` but returns None when the key is missing.

        Conversion failures still raise, an unconvertible value is an error
        and not an absent one.
        """
        raw = self.get(key, chain=chain)
        if raw is None:
            return None
        return self.convert(key, raw, target_type)

    def get_or_default(self, key: str, target_type: Any, default: Any) -> Any:
        value = self.get_optional_value(key, target_type)
        return default if value is None else value

    def convert(self, key: str, raw: str, target_type: Any) -> Any:
        return self.registry.context.converters.convert(key, raw, target_type)

    # ---- bulk ----
    def properties(self, chain: Optional[FilterChain] = None) -> Dict[str, str]:
        """All effective values, filtered and evaluated."""
        return {
            key: value.value
            for key, value in self.property_values(chain).items()
            if value.value is not None
        }

    def property_values(self, chain: Optional[FilterChain] = None) -> Dict[str, PropertyValue]:
        context = self.registry.context
        combined = self.registry.properties(context)
        filtered = chain_or(chain, self._default_chain).filter_bulk(combined)
        return {key: self._evaluate(value) for key, value in filtered.items()}

    def property_names(self, chain: Optional[FilterChain] = None) -> List[str]:
        return sorted(self.property_values(chain))

    def config_sources(self) -> Tuple[PropertySource, ...]:
        return self.registry.get_sources()

    def snapshot(self) -> ConfigurationSnapshot:
        """Freeze the current effective values."""
        return ConfigurationSnapshot.capture(self)

    @property
    def context(self) -> ConfigurationContext:
        return self.registry.context

    # ---- filtering scope ----
    @contextmanager
    def filter_scope(
        self, *filters: FilterLike, metadata_filtered: bool = True
    ) -> Iterator["FilteredView"]:
        """Run reads through a private filter chain.

        The chain is cleaned up on every exit path, including exceptions::

            with config.filter_scope(RegexPropertyFilter(["^db\\."])) as view:
                db = view.properties()
        """
        chain = FilterChain(filters, metadata_filtered=metadata_filtered)
        try:
            yield FilteredView(self, chain)
        finally:
            chain.cleanup_filter_context()

    def _evaluate(self, value: PropertyValue) -> PropertyValue:
        if value.value is None or "$" not in value.value:
            return value
        return value.with_value(self.evaluator.evaluate(value.value, value.key))

    def __repr__(self) -> str:
        names = [s.name for s in self.registry.get_sources()]
        return f"Configuration(sources={names!r})"


def chain_or(chain: Optional[FilterChain], default: FilterChain) -> FilterChain:
    return chain if chain is not None else default


class FilteredView:
    """Configuration reads bound to one filter chain."""

    def __init__(self, config: Configuration, chain: FilterChain):
        self.config = config
        self.chain = chain

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.config.get(key, default, chain=self.chain)

    def get_value(self, key: str, target_type: Any = str) -> Any:
        return self.config.get_value(key, target_type, chain=self.chain)

    def get_optional_value(self, key: str, target_type: Any = str) -> Optional[Any]:
        return self.config.get_optional_value(key, target_type, chain=self.chain)

    def properties(self) -> Dict[str, str]:
        return self.config.properties(self.chain)

    def property_names(self) -> List[str]:
        return self.config.property_names(self.chain)
