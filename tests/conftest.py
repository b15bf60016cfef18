"""Pytest configuration for graphdone tests."""

import os
from pathlib import Path

import pytest

from graphdone.config import GraphDoneConfig, LimitsConfig
from graphdone.engine.store import Neo4jGraphStore
from graphdone.service import GraphService
from graphdone.testing import FakeDriver, FakeSession


def _load_env_file(path: Path) -> None:
    """Load environment variables from a .env file."""
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip("'\"")
                if key and key not in os.environ:
                    os.environ[key] = value


# Local overrides for NEO4J_TEST_* when running integration tests
_load_env_file(Path(__file__).parent.parent / ".env")


@pytest.fixture
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


# =============================================================================
# Fake Neo4j Fixtures
# =============================================================================


@pytest.fixture
def session() -> FakeSession:
    """A scripted session shared by engine tests."""
    return FakeSession()


@pytest.fixture
def driver(session: FakeSession) -> FakeDriver:
    """A driver whose sessions all answer from ``session``'s script."""
    return FakeDriver(session)


@pytest.fixture
def store(driver: FakeDriver) -> Neo4jGraphStore:
    """A real store wrapping the fake driver."""
    return Neo4jGraphStore(driver)


@pytest.fixture
def limits() -> LimitsConfig:
    """Default resource limits."""
    return LimitsConfig()


@pytest.fixture
def service(store: Neo4jGraphStore) -> GraphService:
    """A GraphService over the fake store."""
    return GraphService(store, GraphDoneConfig())


# =============================================================================
# Record Builders
# =============================================================================


@pytest.fixture
def make_node():
    """Factory for WorkItem property maps as Neo4j returns them."""

    def _create(node_id: str = "node_a", **overrides):
        node = {
            "id": node_id,
            "title": f"Item {node_id}",
            "description": "",
            "type": "TASK",
            "status": "PROPOSED",
            "priorityExecutive": 0.0,
            "priorityIndividual": 0.0,
            "priorityCommunity": 0.0,
            "priorityComputed": 0.0,
            "metadata": "{}",
            "createdAt": "2024-01-01T00:00:00+00:00",
            "updatedAt": "2024-01-01T00:00:00+00:00",
        }
        node.update(overrides)
        return node

    return _create
