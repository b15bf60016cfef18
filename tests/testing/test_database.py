"""Tests for the TestDatabase lifecycle manager."""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from graphdone.engine.store import Neo4jGraphStore
from graphdone.testing.database import TestDatabase, TestDatabaseConfig


# =============================================================================
# Test TestDatabaseConfig
# =============================================================================


class TestTestDatabaseConfig:
    """Tests for TestDatabaseConfig dataclass."""

    def test_default_values(self):
        """Config uses sensible defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = TestDatabaseConfig()

        assert config.neo4j_uri == "bolt://localhost:7687"
        assert config.neo4j_username == "neo4j"
        assert config.neo4j_password == "graphdone_password"
        assert config.database_name == "neo4j"

    def test_env_var_override(self):
        """Config reads from environment variables."""
        with patch.dict(os.environ, {
            "NEO4J_TEST_URI": "bolt://custom:7687",
            "NEO4J_TEST_USER": "custom_user",
            "NEO4J_TEST_PASSWORD": "custom_pass",
            "NEO4J_TEST_DATABASE": "custom_db",
        }):
            config = TestDatabaseConfig()

            assert config.neo4j_uri == "bolt://custom:7687"
            assert config.neo4j_username == "custom_user"
            assert config.neo4j_password == "custom_pass"
            assert config.database_name == "custom_db"


# =============================================================================
# Test get_config() / create_store()
# =============================================================================


class TestStoreFactory:
    """Tests for get_config() and create_store()."""

    @pytest.fixture
    def custom_db(self):
        return TestDatabase(
            TestDatabaseConfig(
                neo4j_uri="bolt://test:7687",
                neo4j_username="test_user",
                neo4j_password="test_pass",
                database_name="test_db",
            )
        )

    def test_config_matches_database_settings(self, custom_db):
        """Neo4jConfig values match database settings."""
        config = custom_db.get_config()

        assert config.uri == "bolt://test:7687"
        assert config.username == "test_user"
        assert config.password == "test_pass"
        assert config.database == "test_db"

    def test_create_store(self, custom_db):
        """create_store() binds a new driver to the test database."""
        driver = MagicMock()
        with patch("graphdone.testing.database.AsyncGraphDatabase") as mock_gdb:
            mock_gdb.driver = MagicMock(return_value=driver)
            store = custom_db.create_store()

        assert isinstance(store, Neo4jGraphStore)
        assert store.driver is driver
        assert store.config.database == "test_db"
        mock_gdb.driver.assert_called_once_with(
            "bolt://test:7687", auth=("test_user", "test_pass")
        )


# =============================================================================
# Test Lifecycle with Mocked Neo4j
# =============================================================================


class TestLifecycleMocked:
    """Tests for lifecycle methods using a mocked Neo4j driver."""

    @pytest.fixture
    def mock_driver(self):
        """Create a mock Neo4j async driver."""
        driver = MagicMock()
        driver.close = AsyncMock()

        session = MagicMock()
        session.run = AsyncMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=None)

        driver.session = MagicMock(return_value=session)
        return driver, session

    @pytest.fixture
    async def db(self, mock_driver):
        """Initialized TestDatabase over the mocked driver."""
        driver, _ = mock_driver
        db = TestDatabase()
        with patch("graphdone.testing.database.AsyncGraphDatabase") as mock_gdb:
            mock_gdb.driver = MagicMock(return_value=driver)
            await db.initialize()
        return db

    @pytest.mark.asyncio
    async def test_initialize_creates_driver(self, db, mock_driver):
        """initialize() creates the driver connection."""
        driver, _ = mock_driver

        assert db._initialized
        assert db._driver is driver

    @pytest.mark.asyncio
    async def test_initialize_idempotent(self, mock_driver):
        """initialize() only runs once."""
        driver, _ = mock_driver
        db = TestDatabase()

        with patch("graphdone.testing.database.AsyncGraphDatabase") as mock_gdb:
            mock_gdb.driver = MagicMock(return_value=driver)
            await db.initialize()
            await db.initialize()

            assert mock_gdb.driver.call_count == 1

    @pytest.mark.asyncio
    async def test_clear_deletes_all_nodes(self, db, mock_driver):
        """clear() runs DETACH DELETE."""
        _, session = mock_driver

        await db.clear()

        session.run.assert_called_with("MATCH (n) DETACH DELETE n")

    @pytest.mark.asyncio
    async def test_node_count_by_label(self, db, mock_driver):
        """node_count() restricts to a label when given."""
        _, session = mock_driver
        result = MagicMock()
        result.single = AsyncMock(return_value={"count": 4})
        session.run = AsyncMock(return_value=result)

        assert await db.node_count("WorkItem") == 4
        session.run.assert_called_with("MATCH (n:WorkItem) RETURN count(n) as count")

    @pytest.mark.asyncio
    async def test_close_closes_driver(self, db, mock_driver):
        """close() closes the driver connection."""
        driver, _ = mock_driver

        await db.close()

        driver.close.assert_called_once()
        assert db._driver is None
        assert not db._initialized

    @pytest.mark.asyncio
    async def test_requires_initialization(self):
        """Lifecycle calls fail before initialize()."""
        db = TestDatabase()

        with pytest.raises(RuntimeError, match="not initialized"):
            await db.clear()
        with pytest.raises(RuntimeError, match="not initialized"):
            await db.verify_connection()

    @pytest.mark.asyncio
    async def test_verify_connection_runs_test_query(self, db, mock_driver):
        """verify_connection() runs a trivial query."""
        _, session = mock_driver
        result = MagicMock()
        result.single = AsyncMock(return_value={"n": 1})
        session.run = AsyncMock(return_value=result)

        await db.verify_connection()

        session.run.assert_called_with("RETURN 1 as n")

    @pytest.mark.asyncio
    async def test_verify_connection_helpful_error(self, db, mock_driver):
        """verify_connection() reports connection details on failure."""
        _, session = mock_driver
        session.run = AsyncMock(side_effect=Exception("Connection refused"))

        with pytest.raises(RuntimeError) as exc_info:
            await db.verify_connection()

        error_msg = str(exc_info.value)
        assert "Neo4j connection failed" in error_msg
        assert db.config.neo4j_uri in error_msg
        assert "Connection refused" in error_msg


class TestContextManager:
    """Tests for async context manager support."""

    @pytest.mark.asyncio
    async def test_context_manager_initializes_and_closes(self):
        """Context manager initializes on enter and closes on exit."""
        mock_driver = MagicMock()
        mock_driver.close = AsyncMock()

        with patch("graphdone.testing.database.AsyncGraphDatabase") as mock_gdb:
            mock_gdb.driver = MagicMock(return_value=mock_driver)

            async with TestDatabase() as db:
                assert db._initialized
                assert db._driver is mock_driver

            mock_driver.close.assert_called_once()
