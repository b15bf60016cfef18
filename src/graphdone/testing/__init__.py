"""
GraphDone Testing Support.

Fakes for unit tests and a lifecycle manager for Neo4j integration tests.

Usage
-----

1. Unit tests script a fake session and drive engine functions directly:

    from graphdone.testing import FakeSession

    session = FakeSession()
    session.on("MATCH (n:WorkItem {id: $node_id})", [{"n": {"id": "task-1"}}])
    node = await get_node_details(session, "task-1")

2. Service and server tests wrap a FakeDriver in a real store:

    from graphdone.testing import FakeDriver

    driver = FakeDriver()
    service = GraphService(Neo4jGraphStore(driver))

3. Integration tests use a real database:

    from graphdone.testing import TestDatabase

    async with TestDatabase() as db:
        await db.clear()
        store = db.create_store()

    # Run only integration tests
    pytest tests/ -m integration
"""

from graphdone.testing.database import TestDatabase, TestDatabaseConfig
from graphdone.testing.fakes import (
    FakeDriver,
    FakeRecord,
    FakeResult,
    FakeSession,
    FakeTransaction,
    RecordedCall,
    ScriptedResponse,
)

__all__ = [
    # Database lifecycle
    "TestDatabase",
    "TestDatabaseConfig",
    # Fakes
    "FakeDriver",
    "FakeRecord",
    "FakeResult",
    "FakeSession",
    "FakeTransaction",
    "RecordedCall",
    "ScriptedResponse",
]
