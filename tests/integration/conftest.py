"""
Integration test fixtures.

Provides fixtures for:
- TestDatabase (Neo4j lifecycle)
- A GraphService bound to the real test database

Requirements:
- Running Neo4j 5 instance (default: bolt://localhost:7687)

Environment Variables:
- NEO4J_TEST_URI: Neo4j connection URI
- NEO4J_TEST_USER: Neo4j username
- NEO4J_TEST_PASSWORD: Neo4j password
- NEO4J_TEST_DATABASE: Neo4j database name
"""

from __future__ import annotations

import pytest

from graphdone.config import GraphDoneConfig
from graphdone.service import GraphService
from graphdone.testing import TestDatabase


@pytest.fixture
async def test_database():
    """Initialized, cleared test database; skips when Neo4j is unreachable."""
    db = TestDatabase()
    await db.initialize()
    try:
        await db.verify_connection()
    except RuntimeError as e:
        await db.close()
        pytest.skip(f"Neo4j not available: {e}")
    await db.clear()
    yield db
    await db.close()


@pytest.fixture
async def graph_service(test_database: TestDatabase):
    """GraphService over a store with the schema in place."""
    store = test_database.create_store()
    await store.initialize()
    service = GraphService(store, GraphDoneConfig(neo4j=test_database.get_config()))
    yield service
    await service.close()
