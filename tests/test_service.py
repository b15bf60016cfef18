"""Tests for GraphService error mapping, transactions and metrics."""

import pytest
from neo4j.exceptions import ServiceUnavailable

from graphdone.exceptions import ErrorKind
from graphdone.service import GraphService, UsageMetrics


def _created_node(params):
    return [{"n": {"id": params["id"], "title": params["title"], "metadata": params["metadata"]}}]


class TestOperationResults:
    """Every call returns an OperationResult, never an exception."""

    @pytest.mark.asyncio
    async def test_success(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)

        result = await service.create_node({"title": "Ship v1"})

        assert result.success is True
        assert result.data["title"] == "Ship v1"
        payload = result.to_payload()
        assert payload["success"] is True
        assert payload["title"] == "Ship v1"

    @pytest.mark.asyncio
    async def test_validation_failure(self, service, session):
        result = await service.create_node({"type": "SPRINT"})

        assert result.success is False
        assert result.error_kind is ErrorKind.VALIDATION
        assert "Invalid node type" in result.error
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        result = await service.delete_node("node_x")

        assert result.error_kind is ErrorKind.NOT_FOUND
        assert result.to_payload() == {
            "success": False,
            "error": "Node not found: node_x",
            "error_kind": "NOT_FOUND",
        }

    @pytest.mark.asyncio
    async def test_driver_error_becomes_storage(self, service, session):
        session.on("CREATE (n:WorkItem {", error=ServiceUnavailable("database down"))

        result = await service.create_node({"title": "Ship v1"})

        assert result.success is False
        assert result.error_kind is ErrorKind.STORAGE
        assert result.error.startswith("Database error during create node")
        assert "database down" in result.error

    @pytest.mark.asyncio
    async def test_unknown_query_type(self, service):
        result = await service.browse_graph("everything")

        assert result.error_kind is ErrorKind.VALIDATION
        assert "Unknown query_type" in result.error

    @pytest.mark.asyncio
    async def test_envelope_flags_errors(self, service):
        result = await service.get_graph_details("graph_x")

        envelope = result.to_envelope()
        assert envelope["isError"] is True
        assert envelope["content"][0]["type"] == "text"
        assert '"error_kind": "NOT_FOUND"' in envelope["content"][0]["text"]


class TestSessions:
    """Tests for session handling."""

    @pytest.mark.asyncio
    async def test_session_per_call(self, service, driver):
        await service.detect_cycles()
        await service.detect_cycles()

        assert driver.databases == [service.store.config.database] * 2

    @pytest.mark.asyncio
    async def test_bulk_failures_are_in_payload(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)

        result = await service.bulk_operations(
            [
                {"type": "create_node", "params": {"title": "ok"}},
                {"type": "create_node", "params": {"type": "SPRINT"}},
            ]
        )

        assert result.success is True
        assert result.data["rolled_back"] is True
        assert result.data["failed_operations"] == 1

    @pytest.mark.asyncio
    async def test_bulk_over_limit_fails_whole_call(self, service):
        operations = [{"type": "create_node", "params": {}}] * (
            service.limits.max_bulk_operations + 1
        )

        result = await service.bulk_operations(operations)

        assert result.error_kind is ErrorKind.LIMIT_EXCEEDED


class TestMutationTransactions:
    """Multi-statement mutations commit or roll back as one unit."""

    @pytest.mark.asyncio
    async def test_create_node_commits(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)

        result = await service.create_node({"title": "Ship v1", "contributor_ids": ["alice"]})

        assert result.success is True
        assert len(session.transactions) == 1
        assert session.transactions[0].committed is True
        assert len(session.calls) == 2
        assert all(call.in_transaction for call in session.calls)

    @pytest.mark.asyncio
    async def test_create_node_rolls_back_when_linking_fails(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)
        session.on("UNWIND $contributor_ids", error=ServiceUnavailable("connection reset"))

        result = await service.create_node({"title": "Ship v1", "contributor_ids": ["alice"]})

        assert result.error_kind is ErrorKind.STORAGE
        assert len(session.transactions) == 1
        tx = session.transactions[0]
        assert tx.rolled_back is True
        assert tx.committed is False
        assert tx.closed is True
        assert all(call.in_transaction for call in session.calls)

    @pytest.mark.asyncio
    async def test_update_node_rolls_back_when_relinking_fails(self, service, session):
        session.on(
            "SET n.title = $set_title",
            [{"n": {"id": "node_a", "title": "Renamed", "metadata": "{}"}}],
        )
        session.on("UNWIND $contributor_ids", error=ServiceUnavailable("connection reset"))

        result = await service.update_node(
            "node_a", {"title": "Renamed", "contributor_ids": ["bob"]}
        )

        assert result.error_kind is ErrorKind.STORAGE
        tx = session.transactions[0]
        assert tx.rolled_back is True
        assert tx.committed is False
        assert [call.in_transaction for call in session.calls] == [True, True, True]
        assert "DELETE r" in session.calls[1].query

    @pytest.mark.asyncio
    async def test_commit_failure_is_storage(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)
        session.commit_error = ServiceUnavailable("leader lost")

        result = await service.create_node({"title": "Ship v1"})

        assert result.error_kind is ErrorKind.STORAGE
        tx = session.transactions[0]
        assert tx.committed is False
        assert tx.rolled_back is False
        assert tx.closed is True


class TestBulkPriorityEnvelope:
    """bulk_update_priorities reports bad items instead of raising."""

    @pytest.mark.asyncio
    async def test_non_object_item(self, service, session):
        result = await service.bulk_update_priorities(["node-1"])

        assert result.success is True
        assert result.data["failed_updates"] == 1
        assert result.data["results"][0]["error_kind"] == "VALIDATION"
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_storage_error_does_not_abort_batch(self, service, session):
        session.on(
            "SET n.priorityExecutive = executive",
            error=ServiceUnavailable("connection reset"),
            times=1,
        )
        session.on(
            "SET n.priorityExecutive = executive",
            [{"n": {"id": "node_b", "priorityExecutive": 0.5, "priorityComputed": 0.2}}],
        )

        result = await service.bulk_update_priorities(
            [{"node_id": "node_a", "executive": 0.5}, {"node_id": "node_b", "executive": 0.5}]
        )

        assert result.success is True
        assert [r["success"] for r in result.data["results"]] == [False, True]
        assert result.data["results"][0]["error_kind"] == "STORAGE"


class TestCloneTransaction:
    """clone_graph runs inside one explicit transaction."""

    @pytest.mark.asyncio
    async def test_commits(self, service, session):
        session.on("MATCH (g:Graph {id: $graph_id}) RETURN g", [{"g": {"id": "graph_1"}}])

        result = await service.clone_graph("graph_1", "Copy", include_nodes=False)

        assert result.success is True
        tx = session.transactions[0]
        assert tx.committed is True
        assert tx.closed is True
        assert all(call.in_transaction for call in session.calls)

    @pytest.mark.asyncio
    async def test_rolls_back_on_failure(self, service, session):
        session.on("MATCH (g:Graph {id: $graph_id}) RETURN g", [{"g": {"id": "graph_1"}}])
        session.on("RETURN n.id AS id", error=ServiceUnavailable("connection reset"))

        result = await service.clone_graph("graph_1", "Copy")

        assert result.error_kind is ErrorKind.STORAGE
        tx = session.transactions[0]
        assert tx.rolled_back is True
        assert tx.committed is False
        assert tx.closed is True

    @pytest.mark.asyncio
    async def test_validation_rolls_back(self, service, session):
        result = await service.clone_graph("graph_1", "")

        assert result.error_kind is ErrorKind.VALIDATION
        assert session.transactions[0].rolled_back is True


class TestUsageMetrics:
    """Tests for call counters."""

    def test_record(self):
        metrics = UsageMetrics()

        metrics.record("create node", True)
        metrics.record("create node", False)
        metrics.record("find path", True)

        snapshot = metrics.snapshot()
        assert snapshot["total_calls"] == 3
        assert snapshot["total_failures"] == 1
        assert snapshot["calls"] == {"create node": 2, "find path": 1}
        assert snapshot["failures"] == {"create node": 1}
        assert snapshot["last_request"] is not None

    def test_empty_snapshot(self):
        snapshot = UsageMetrics().snapshot()

        assert snapshot["total_calls"] == 0
        assert snapshot["last_request"] is None
        assert snapshot["uptime_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_service_records_every_call(self, service, session):
        session.on("CREATE (n:WorkItem {", _created_node)

        await service.create_node({"title": "a"})
        await service.create_node({"type": "SPRINT"})

        snapshot = service.metrics.snapshot()
        assert snapshot["calls"]["create node"] == 2
        assert snapshot["failures"]["create node"] == 1


class TestLifecycle:
    """Tests for ping and close."""

    @pytest.mark.asyncio
    async def test_ping(self, service, driver):
        assert await service.ping() is True

        driver.connectivity_error = ServiceUnavailable("down")
        assert await service.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, service, driver):
        await service.close()

        assert driver.closed is True

    def test_default_config(self, store):
        service = GraphService(store)

        assert service.limits.max_bulk_operations == 100
