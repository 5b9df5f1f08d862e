from __future__ import annotations

from typing import List

import pytest
from loguru import logger

from strata.core.configuration import Configuration
from strata.core.registry import PropertySourceRegistry
from strata.sources.memory import InMemoryPropertySource


@pytest.fixture
def log_messages():
    """Collect warnings logged by strata while the test runs."""
    messages: List[str] = []
    logger.enable("strata")
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)
    logger.disable("strata")


@pytest.fixture
def defaults() -> InMemoryPropertySource:
    return InMemoryPropertySource(
        "defaults",
        {"app.name": "demo", "db.host": "localhost", "db.port": "5432", "_version": "7"},
        ordinal=100,
    )


@pytest.fixture
def overrides() -> InMemoryPropertySource:
    return InMemoryPropertySource("overrides", {"db.host": "db.internal"}, ordinal=200)


@pytest.fixture
def config(defaults, overrides) -> Configuration:
    registry = PropertySourceRegistry()
    registry.add_sources(defaults, overrides)
    return Configuration(registry)
