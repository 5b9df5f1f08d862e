"""Unit tests for DynamicValue."""

from __future__ import annotations

import threading

import pytest

from strata.core.dynamic import DynamicValue
from strata.core.errors import ConfigError
from strata.core.types import ChangeRequest, UpdatePolicy, ValueState


def change(source, **values):
    source.apply_change(ChangeRequest().put_all(values))


class TestConstruction:
    """Test suite for creating dynamic values."""

    def test_initial_value_loaded(self, config):
        """Test the value is read when the handle is created."""
        value = DynamicValue(config, ["db.host"])
        assert value.get() == "db.internal"
        assert value.state is ValueState.LOADED

    def test_missing_key_has_no_value(self, config):
        """Test a handle on a missing key starts without a value."""
        value = DynamicValue(config, ["missing"])
        assert value.get() is None
        assert value.state is ValueState.NO_VALUE
        assert not value.is_present()

    def test_first_matching_key_wins(self, config):
        """Test candidate keys are tried in order."""
        value = DynamicValue(config, ["missing", "app.name", "db.host"])
        assert value.get() == "demo"

    def test_single_key_string(self, config):
        """Test a single key can be given as a plain string."""
        value = DynamicValue(config, "app.name")
        assert value.keys == ("app.name",)
        assert value.property_name == "app.name"

    def test_empty_keys_rejected(self, config):
        """Test at least one key is required."""
        with pytest.raises(ConfigError):
            DynamicValue(config, [])

    def test_target_type(self, config):
        """Test values are converted to the target type."""
        value = DynamicValue(config, ["db.port"], target_type=int)
        assert value.get() == 5432


class TestExplicitPolicy:
    """Test suite for explicitly committed values."""

    def test_update_stages_without_changing_get(self, config, overrides):
        """Test update_value stages a change that get() does not see yet."""
        value = DynamicValue(config, ["db.host"])
        change(overrides, **{"db.host": "db.new"})

        assert value.update_value() is True
        assert value.state is ValueState.STALE
        assert value.new_value == "db.new"
        assert value.get() == "db.internal"

        value.commit()
        assert value.get() == "db.new"
        assert value.state is ValueState.LOADED

    def test_update_without_change(self, config):
        """Test an unchanged value stays loaded."""
        value = DynamicValue(config, ["db.host"])
        assert value.update_value() is False
        assert value.state is ValueState.LOADED

    def test_commit_and_get(self, config, overrides):
        """Test commit_and_get returns the freshly committed value."""
        value = DynamicValue(config, ["db.host"])
        change(overrides, **{"db.host": "db.other"})
        value.update_value()
        assert value.commit_and_get() == "db.other"

    def test_value_disappears(self, config, overrides):
        """Test removing the key commits to no value."""
        value = DynamicValue(config, ["db.host"])
        overrides.apply_change(ChangeRequest().remove("db.host"))
        value.update_value()
        assert value.new_value == "localhost"

        value = DynamicValue(config, ["app.name"])
        config.registry.remove_sources("defaults")
        value.update_value()
        value.commit()
        assert value.get() is None
        assert value.state is ValueState.NO_VALUE


class TestOtherPolicies:
    """Test suite for IMMEDIATE, LOG_ONLY and NEVER."""

    def test_immediate_commits_on_get(self, config, overrides):
        """Test IMMEDIATE values pick up changes on every get."""
        value = DynamicValue(config, ["db.host"], UpdatePolicy.IMMEDIATE)
        change(overrides, **{"db.host": "db.fresh"})
        assert value.get() == "db.fresh"
        assert value.state is ValueState.LOADED

    def test_log_only_stages_without_committing(self, config, overrides):
        """Test LOG_ONLY reports the change but keeps the committed value."""
        value = DynamicValue(config, ["db.host"], UpdatePolicy.LOG_ONLY)
        change(overrides, **{"db.host": "db.fresh"})
        assert value.update_value() is True
        assert value.state is ValueState.STALE
        assert value.get() == "db.internal"

    def test_never_ignores_changes(self, config, overrides):
        """Test NEVER neither stages nor reports a change."""
        value = DynamicValue(config, ["db.host"], UpdatePolicy.NEVER)
        change(overrides, **{"db.host": "db.fresh"})
        assert value.update_value() is False
        assert value.state is ValueState.LOADED
        assert value.new_value == "db.internal"
        value.commit()
        assert value.get() == "db.internal"


class TestOptionalAccessors:
    """Test suite for the optional-style accessors."""

    def test_or_else(self, config):
        """Test fallbacks for missing values."""
        present = DynamicValue(config, ["app.name"])
        missing = DynamicValue(config, ["missing"])
        assert present.or_else("x") == "demo"
        assert missing.or_else("x") == "x"
        assert missing.or_else_get(lambda: "supplied") == "supplied"

    def test_or_else_throw(self, config):
        """Test a missing value raises the supplied exception."""
        missing = DynamicValue(config, ["missing"])
        with pytest.raises(LookupError):
            missing.or_else_throw(lambda: LookupError("missing"))
        assert DynamicValue(config, ["app.name"]).or_else_throw(LookupError) == "demo"


class TestListeners:
    """Test suite for change listeners."""

    def test_listener_notified_on_commit(self, config, overrides):
        """Test listeners receive old and new values on commit."""
        owner = object()
        events = []
        value = DynamicValue(config, ["db.host"], owner=owner, property_name="host")
        value.add_listener(events.append)
        change(overrides, **{"db.host": "db.new"})
        value.update_value()
        assert events == []

        value.commit()
        assert len(events) == 1
        event = events[0]
        assert event.owner is owner
        assert event.property_name == "host"
        assert (event.old_value, event.new_value) == ("db.internal", "db.new")

    def test_no_event_without_change(self, config):
        """Test committing an unchanged value publishes nothing."""
        events = []
        value = DynamicValue(config, ["db.host"])
        value.add_listener(events.append)
        value.commit()
        assert events == []

    def test_remove_listener(self, config, overrides):
        """Test removed listeners are no longer called."""
        events = []
        value = DynamicValue(config, ["db.host"], UpdatePolicy.IMMEDIATE)
        value.add_listener(events.append)
        value.remove_listener(events.append)
        change(overrides, **{"db.host": "db.new"})
        value.get()
        assert events == []

    def test_failing_listener_logged(self, config, overrides, log_messages):
        """Test a raising listener does not prevent the commit."""
        def broken(event):
            raise RuntimeError("listener exploded")

        value = DynamicValue(config, ["db.host"], UpdatePolicy.IMMEDIATE)
        value.add_listener(broken)
        change(overrides, **{"db.host": "db.new"})
        assert value.get() == "db.new"
        assert any("listener exploded" in m for m in log_messages)


class TestConcurrency:
    """Test suite for concurrent access."""

    def test_listener_runs_outside_value_lock(self, config, overrides):
        """Test a listener can wait for another thread using the same value."""
        value = DynamicValue(config, ["db.host"])
        blocked = []

        def listener(event):
            worker = threading.Thread(target=value.commit_and_get)
            worker.start()
            worker.join(timeout=1)
            blocked.append(worker.is_alive())

        value.add_listener(listener)
        change(overrides, **{"db.host": "db.new"})
        value.update_value()
        assert value.commit_and_get() == "db.new"
        assert blocked == [False]

    def test_concurrent_updates_and_commits(self, config, overrides):
        """Test concurrent updates always leave a value some writer produced."""
        value = DynamicValue(config, ["counter"], target_type=int)
        written = {str(i) for i in range(50)}

        def writer():
            for i in range(50):
                change(overrides, counter=i)

        def reader():
            for _ in range(50):
                value.update_value()
                value.commit()

        threads = [threading.Thread(target=writer)] + [
            threading.Thread(target=reader) for _ in range(4)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        value.update_value()
        value.commit()
        assert value.get() == 49
        assert str(value.get()) in written
