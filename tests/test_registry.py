"""Unit tests for the PropertySourceRegistry."""

from __future__ import annotations

import random
from typing import Mapping

import pytest

from strata.core.registry import PropertySourceRegistry
from strata.core.source import effective_ordinal
from strata.core.types import PropertyValue
from strata.sources.memory import InMemoryPropertySource


class BrokenSource:
    """Source raising on every access."""

    def __init__(self, name: str = "broken", ordinal: int = 1000):
        self.name = name
        self.ordinal = ordinal
        self.scannable = True

    def get(self, key: str):
        raise RuntimeError("backend down")

    def properties(self) -> Mapping[str, PropertyValue]:
        raise RuntimeError("backend down")


def names(sources):
    return [s.name for s in sources]


class TestOrdering:
    """Test suite for source ordering."""

    def test_sources_sorted_by_ordinal(self):
        """Test sources are listed lowest ordinal first."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("c", ordinal=30),
            InMemoryPropertySource("a", ordinal=10),
            InMemoryPropertySource("b", ordinal=20),
        )
        assert names(registry.get_sources()) == ["a", "b", "c"]

    def test_ties_broken_by_name(self):
        """Test equal ordinals are ordered by name."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("zeta", ordinal=5),
            InMemoryPropertySource("alpha", ordinal=5),
        )
        assert names(registry.get_sources()) == ["alpha", "zeta"]

    def test_order_independent_of_registration_order(self):
        """Test the listing order is deterministic for shuffled input."""
        specs = [("s%d" % i, i % 3) for i in range(12)]
        orders = set()
        for seed in range(5):
            shuffled = list(specs)
            random.Random(seed).shuffle(shuffled)
            registry = PropertySourceRegistry()
            for name, ordinal in shuffled:
                registry.add_sources(InMemoryPropertySource(name, ordinal=ordinal))
            orders.add(tuple(names(registry.get_sources())))
        assert len(orders) == 1

    def test_same_name_replaces_source(self):
        """Test registering a name twice keeps only the newer source."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("s", {"k": "old"}))
        registry.add_sources(InMemoryPropertySource("s", {"k": "new"}))
        assert len(registry.get_sources()) == 1
        assert registry.resolve("k").value == "new"

    def test_same_name_in_one_call_keeps_last(self):
        """Test duplicate names in a single registration collapse to the last."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("s", {"k": "1"}),
            InMemoryPropertySource("s", {"k": "2"}),
        )
        assert names(registry.get_sources()) == ["s"]
        assert registry.resolve("k").value == "2"

    def test_remove_sources(self):
        """Test removing a source by name."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("a"), InMemoryPropertySource("b"))
        registry.remove_sources("a")
        assert names(registry.get_sources()) == ["b"]
        assert registry.get_source("a") is None
        assert registry.get_source("b") is not None


class TestResolve:
    """Test suite for single key resolution."""

    def test_higher_ordinal_wins(self):
        """Test the source with the higher ordinal provides the value."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("A", {"k": "from-a"}, ordinal=10),
            InMemoryPropertySource("B", {"k": "from-b"}, ordinal=20),
        )
        value = registry.resolve("k")
        assert value.value == "from-b"
        assert value.source == "B"

    def test_equal_ordinal_smaller_name_wins(self):
        """Test the lexicographically smaller name wins a tie."""
        for order in ((0, 1), (1, 0)):
            sources = [
                InMemoryPropertySource("beta", {"k": "b"}, ordinal=7),
                InMemoryPropertySource("alpha", {"k": "a"}, ordinal=7),
            ]
            registry = PropertySourceRegistry()
            registry.add_sources(*(sources[i] for i in order))
            assert registry.resolve("k").value == "a"

    def test_missing_key_is_none(self):
        """Test a key held by no source resolves to None."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("a", {"x": "1"}))
        assert registry.resolve("y") is None

    def test_failing_source_is_skipped(self, log_messages):
        """Test a raising source does not abort the lookup."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            BrokenSource(),
            InMemoryPropertySource("fallback", {"k": "v"}, ordinal=1),
        )
        assert registry.resolve("k").value == "v"
        assert any("backend down" in m for m in log_messages)

    def test_failing_source_skipped_in_bulk(self):
        """Test a raising source is left out of bulk reads."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            BrokenSource(),
            InMemoryPropertySource("fallback", {"k": "v"}, ordinal=1),
        )
        assert {k: v.value for k, v in registry.properties().items()} == {"k": "v"}

    def test_bulk_read_overrides(self):
        """Test bulk reads let higher ordinals override lower ones."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("low", {"k": "low", "only_low": "1"}, ordinal=1),
            InMemoryPropertySource("high", {"k": "high"}, ordinal=2),
        )
        props = registry.properties()
        assert props["k"].value == "high"
        assert props["only_low"].value == "1"

    def test_non_scannable_source_skipped_in_bulk(self):
        """Test bulk reads ignore sources that cannot be listed."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("hidden", {"k": "v"}, scannable=False))
        assert registry.properties() == {}
        assert registry.resolve("k").value == "v"


class TestOrdinalOverride:
    """Test suite for self-declared ordinals."""

    def test_declared_ordinal_overrides_assigned(self):
        """Test a parseable _ordinal entry replaces the assigned ordinal."""
        source = InMemoryPropertySource("s", {"_ordinal": " 500 "}, ordinal=1)
        assert effective_ordinal(source) == 500

    def test_alternative_ordinal_key(self):
        """Test the STRATA_ORDINAL key is honoured."""
        source = InMemoryPropertySource("s", {"STRATA_ORDINAL": "42"}, ordinal=1)
        assert effective_ordinal(source) == 42

    def test_invalid_declared_ordinal_falls_back(self, log_messages):
        """Test a non-integer declaration is logged and ignored."""
        source = InMemoryPropertySource("s", {"_ordinal": "high"}, ordinal=3)
        assert effective_ordinal(source) == 3
        assert any("high" in m for m in log_messages)

    def test_declared_ordinal_changes_precedence(self):
        """Test a declared ordinal moves a source up in precedence."""
        registry = PropertySourceRegistry()
        registry.add_sources(
            InMemoryPropertySource("a", {"k": "a", "_ordinal": "99"}, ordinal=1),
            InMemoryPropertySource("b", {"k": "b"}, ordinal=50),
        )
        assert names(registry.get_sources()) == ["b", "a"]
        assert registry.resolve("k").value == "a"


class TestSnapshots:
    """Test suite for copy-on-write snapshots."""

    def test_old_snapshot_unchanged_after_add(self):
        """Test a captured context is not modified by later registrations."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("a"))
        before = registry.context
        registry.add_sources(InMemoryPropertySource("b"))
        assert names(before.sources) == ["a"]
        assert names(registry.context.sources) == ["a", "b"]
        assert before is not registry.context

    def test_converter_registration_creates_new_snapshot(self):
        """Test adding a converter swaps the context."""
        registry = PropertySourceRegistry()
        before = registry.context
        registry.add_converter(complex, complex)
        assert complex not in before.converters
        assert complex in registry.context.converters

    def test_resolve_against_given_snapshot(self):
        """Test lookups can be pinned to an older snapshot."""
        registry = PropertySourceRegistry()
        registry.add_sources(InMemoryPropertySource("a", {"k": "1"}, ordinal=1))
        pinned = registry.context
        registry.add_sources(InMemoryPropertySource("b", {"k": "2"}, ordinal=2))
        assert registry.resolve("k", pinned).value == "1"
        assert registry.resolve("k").value == "2"
