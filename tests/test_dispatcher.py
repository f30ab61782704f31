"""Tests for synthetic test execution cycles."""

import json
import threading
import time

import httpx
import pytest

from synthetic_monitor.dispatcher import TestDispatcher
from synthetic_monitor.errors import PersistenceFailure
from synthetic_monitor.history import HistoryFilters, InMemoryHistoryStore
from synthetic_monitor.models import (
    CycleState,
    FailureReason,
    InvocationResult,
    Node,
    NodeGroup,
    SyntheticTest,
    Target,
    TargetKind,
)


def by_host(statuses: dict[str, int]):
    """Mock transport handler answering each node host with a fixed status."""
    def handler(request):
        return httpx.Response(statuses.get(request.url.host, 200), json={"host": request.url.host})
    return handler


class RaisingInvoker:
    """Invoker that blows up for one node."""

    def __init__(self, failing_node_id: int) -> None:
        self.failing_node_id = failing_node_id

    def invoke(self, api, node, parameters):
        if node.id == self.failing_node_id:
            raise RuntimeError("invoker crashed")
        return InvocationResult(success=True, status_code=200, response_time_ms=5, data={})


class SlowInvoker:
    """Invoker that never finishes for one node until released."""

    def __init__(self, slow_node_id: int) -> None:
        self.slow_node_id = slow_node_id
        self.release = threading.Event()

    def invoke(self, api, node, parameters):
        if node.id == self.slow_node_id:
            self.release.wait(5)
        return InvocationResult(success=True, status_code=200, response_time_ms=5, data={})


class CountingInvoker:
    """Invoker that records how many calls run at the same time."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def invoke(self, api, node, parameters):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return InvocationResult(success=True, status_code=200, response_time_ms=5, data={})


class FlakyHistory(InMemoryHistoryStore):
    """History store that refuses rows of one node."""

    def __init__(self, repository, failing_node_id: int) -> None:
        super().__init__(repository)
        self.failing_node_id = failing_node_id

    def append(self, outcome):
        if outcome.node_id == self.failing_node_id:
            raise PersistenceFailure("Database error: disk full")
        return super().append(outcome)


class TestExecuteCycle:
    """Tests for completed cycles."""

    def test_one_outcome_per_node(self, repository, history, make_invoker):
        dispatcher = TestDispatcher(repository, history, make_invoker(by_host({})))
        report = dispatcher.execute(1)

        assert report.state == CycleState.COMPLETED
        assert [r.node_id for r in report.results] == [1, 2]
        assert report.succeeded_count == 2
        assert report.persisted
        assert len(history) == 2
        assert all(r.outcome.id is not None for r in report.results)

    def test_node_failure_does_not_fail_cycle(self, repository, history, make_invoker):
        dispatcher = TestDispatcher(repository, history, make_invoker(by_host({"10.0.0.2": 500})))
        report = dispatcher.execute(1)

        assert report.state == CycleState.COMPLETED
        assert report.failed_count == 1
        failed = report.results[1].outcome
        assert failed.status_code == 500
        assert not failed.success
        assert json.loads(failed.output) == {"host": "10.0.0.2"}

    def test_network_error_outcome(self, repository, history, make_invoker):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        report = TestDispatcher(repository, history, make_invoker(handler)).execute(1)

        assert report.state == CycleState.COMPLETED
        assert report.total == 2
        for result in report.results:
            assert result.outcome.status_code == 0
            assert "connection refused" in json.loads(result.outcome.output)["message"]

    def test_drifted_group(self, repository, history, make_invoker):
        repository.remove_node(2)
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(1)

        assert report.state == CycleState.COMPLETED
        assert [r.node_id for r in report.results] == [1]
        assert len(history) == 1

    def test_input_payload_recorded(self, repository, history, make_invoker):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200)

        report = TestDispatcher(repository, history, make_invoker(handler)).execute(2)

        assert seen == ["/api/orders/1001"]
        assert json.loads(report.results[0].outcome.input) == {"parameters": {"order_id": "1001"}}

    def test_override_parameters_are_remembered(self, repository, history, make_invoker):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200)

        dispatcher = TestDispatcher(repository, history, make_invoker(handler))
        dispatcher.execute(2, {"order_id": 2002, "verbose": True})

        assert seen == ["http://api.example.com:443/api/orders/2002?verbose=true"]
        assert repository.get_test(2).parameters == {"order_id": 2002, "verbose": True}

    def test_outcomes_searchable_by_test(self, repository, history, make_invoker):
        dispatcher = TestDispatcher(repository, history, make_invoker(by_host({})))
        dispatcher.execute(1)
        dispatcher.execute(2)

        rows, total = history.search(HistoryFilters(test_id=1))
        assert total == 2
        assert {r.node_id for r in rows} == {1, 2}


class TestCycleFailures:
    """Tests for cycles that cannot start."""

    def test_test_not_found(self, repository, history, make_invoker):
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(99)

        assert report.state == CycleState.FAILED
        assert report.failure_reason == FailureReason.TEST_NOT_FOUND
        assert report.error_message == "Synthetic test not found: 99"
        assert len(history) == 0

    def test_api_not_found(self, repository, history, make_invoker):
        repository.remove_api(1)
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(1)

        assert report.failure_reason == FailureReason.API_NOT_FOUND
        assert report.test_name == "Web status"
        assert len(history) == 0

    def test_empty_group(self, repository, history, make_invoker):
        repository.remove_node(1)
        repository.remove_node(2)
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(1)

        assert report.state == CycleState.FAILED
        assert report.failure_reason == FailureReason.NO_TARGETS
        assert report.results == []
        assert len(history) == 0

    def test_unknown_parameter(self, repository, history, make_invoker):
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(
            2, {"color": "red"}
        )

        assert report.failure_reason == FailureReason.VALIDATION_ERROR
        assert "color" in report.error_message
        assert len(history) == 0
        assert repository.get_test(2).parameters == {"order_id": "1001"}


class TestFaultIsolation:
    """Tests for per-node failure containment."""

    def test_invoker_exception(self, repository, history):
        report = TestDispatcher(repository, history, RaisingInvoker(failing_node_id=2)).execute(1)

        assert report.state == CycleState.COMPLETED
        assert report.results[0].outcome.success
        crashed = report.results[1].outcome
        assert not crashed.success
        assert crashed.status_code == 0
        assert crashed.response_time_ms == 0
        assert json.loads(crashed.output) == {"message": "invoker crashed"}
        assert len(history) == 2

    def test_persistence_failure(self, repository, make_invoker):
        history = FlakyHistory(repository, failing_node_id=1)
        report = TestDispatcher(repository, history, make_invoker(by_host({}))).execute(1)

        assert report.state == CycleState.COMPLETED
        assert not report.persisted
        assert report.total == 2
        assert len(report.persistence_errors) == 1
        assert len(history) == 1

    def test_cycle_deadline(self, repository, history):
        invoker = SlowInvoker(slow_node_id=2)
        dispatcher = TestDispatcher(repository, history, invoker, cycle_deadline_seconds=0.2)

        started = time.monotonic()
        try:
            report = dispatcher.execute(1)
        finally:
            invoker.release.set()

        assert time.monotonic() - started < 4
        assert report.state == CycleState.COMPLETED
        assert report.results[0].outcome.success
        late = report.results[1].outcome
        assert not late.success
        assert "Cycle deadline exceeded" in json.loads(late.output)["message"]
        assert len(history) == 2

    @pytest.mark.parametrize("max_workers", [1, 4])
    def test_bounded_pool(self, repository, history, make_invoker, max_workers):
        dispatcher = TestDispatcher(
            repository, history, make_invoker(by_host({})), max_workers=max_workers
        )
        assert dispatcher.execute(1).succeeded_count == 2


class TestConcurrency:
    """Tests for the bounded fan-out."""

    @pytest.fixture
    def wide_test(self, repository) -> int:
        node_ids = list(range(10, 16))
        for node_id in node_ids:
            repository.add_node(Node(id=node_id, name=f"worker-{node_id}", host=f"10.0.1.{node_id}", port=8080))
        repository.add_node_group(NodeGroup(id=10, name="workers", node_ids=node_ids))
        repository.add_test(SyntheticTest(
            id=10,
            name="Worker status",
            api_id=1,
            target=Target(kind=TargetKind.GROUP, id=10),
        ))
        return 10

    @pytest.mark.parametrize("max_workers", [1, 2, 4])
    def test_never_exceeds_max_workers(self, repository, history, wide_test, max_workers):
        invoker = CountingInvoker()
        dispatcher = TestDispatcher(repository, history, invoker, max_workers=max_workers)

        report = dispatcher.execute(wide_test)

        assert report.succeeded_count == 6
        assert 1 <= invoker.peak <= max_workers

    def test_calls_overlap(self, repository, history, wide_test):
        invoker = CountingInvoker(delay=0.2)
        dispatcher = TestDispatcher(repository, history, invoker, max_workers=10)

        started = time.monotonic()
        report = dispatcher.execute(wide_test)

        assert report.succeeded_count == 6
        assert invoker.peak > 1
        # Six sequential calls would take at least 1.2 s
        assert time.monotonic() - started < 1.0
