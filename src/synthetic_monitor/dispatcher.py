"""Execution of one synthetic test cycle across its resolved nodes."""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Any, Mapping

from synthetic_monitor.errors import (
    MonitorError,
    NoTargetsAvailable,
    NotFoundError,
    PersistenceFailure,
    ValidationError,
)
from synthetic_monitor.history import HistoryStore
from synthetic_monitor.invoker import ApiInvoker
from synthetic_monitor.models import (
    ApiDefinition,
    CycleState,
    ExecutionOutcome,
    ExecutionReport,
    FailureReason,
    Node,
    NodeResult,
    SyntheticTest,
)
from synthetic_monitor.parameters import (
    ParameterValue,
    coerce_parameters,
    plain_parameters,
    serialize_input,
    validate_parameters,
)
from synthetic_monitor.repository import Repository
from synthetic_monitor.resolver import TargetResolver

logger = logging.getLogger(__name__)


def _serialize_output(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, default=str)


class TestDispatcher:
    """Run a synthetic test against every node it resolves to.

    A cycle moves through ``resolving -> dispatching -> recording ->
    completed``. A missing test or API, invalid parameters, or an empty
    target set end the cycle early in ``failed`` with nothing written.

    Nodes are invoked concurrently on a bounded thread pool. A failure on one
    node, including an unexpected exception, only produces a failed outcome
    for that node. Every resolved node gets exactly one outcome.
    """

    __test__ = False  # Keep pytest from collecting this class

    def __init__(
        self,
        repository: Repository,
        history: HistoryStore,
        invoker: ApiInvoker,
        resolver: TargetResolver | None = None,
        max_workers: int = 10,
        cycle_deadline_seconds: float | None = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            repository: Catalog of tests, APIs and nodes.
            history: Store receiving one outcome per node.
            invoker: Performs the API calls.
            resolver: Target resolver (defaults to one over ``repository``).
            max_workers: Upper bound on concurrent node invocations.
            cycle_deadline_seconds: Wall-clock bound for the dispatch phase;
                nodes still running afterwards are recorded as failed.
                ``None`` disables the deadline.
        """
        self.repository = repository
        self.history = history
        self.invoker = invoker
        self.resolver = resolver or TargetResolver(repository)
        self.max_workers = max(1, max_workers)
        self.cycle_deadline_seconds = cycle_deadline_seconds

    def execute(
        self,
        test_id: int,
        override_parameters: Mapping[str, Any] | None = None,
    ) -> ExecutionReport:
        """Run one execution cycle.

        Args:
            test_id: Synthetic test to run.
            override_parameters: Values overriding the test's last-run
                parameters for this cycle.

        Returns:
            ExecutionReport. ``state`` is ``failed`` when the cycle could not
            start, ``completed`` once every node has an outcome, whether or
            not the individual calls succeeded.
        """
        report = ExecutionReport(test_id=test_id, test_name=None)

        test = self.repository.get_test(test_id)
        if test is None:
            return self._fail(report, FailureReason.TEST_NOT_FOUND, NotFoundError("Synthetic test", test_id))
        report.test_name = test.name

        api = self.repository.get_api(test.api_id)
        if api is None:
            return self._fail(report, FailureReason.API_NOT_FOUND, NotFoundError("API", test.api_id))

        values = coerce_parameters({**test.parameters, **(override_parameters or {})})
        try:
            validate_parameters(api, values)
        except ValidationError as e:
            return self._fail(report, FailureReason.VALIDATION_ERROR, e)

        self._transition(report, CycleState.RESOLVING)
        nodes = self.resolver.resolve(test)
        if not nodes:
            return self._fail(
                report,
                FailureReason.NO_TARGETS,
                NoTargetsAvailable(
                    f"No nodes available for {test.target.kind.value} {test.target.id}"
                ),
            )

        self._transition(report, CycleState.DISPATCHING)
        outcomes = self._dispatch(test, api, nodes, values)

        self._transition(report, CycleState.RECORDING)
        self._record(report, nodes, outcomes)

        self._transition(report, CycleState.COMPLETED)
        self._remember_parameters(test, values)

        logger.info(
            f"Test '{test.name}' completed: {report.succeeded_count}/{report.total} nodes succeeded"
        )
        return report

    def _dispatch(
        self,
        test: SyntheticTest,
        api: ApiDefinition,
        nodes: list[Node],
        values: Mapping[str, ParameterValue],
    ) -> list[ExecutionOutcome]:
        input_payload = serialize_input(values)
        outcomes: dict[int, ExecutionOutcome] = {}

        # Not a context manager: leaving it would block on nodes past the deadline
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(nodes)),
            thread_name_prefix=f"stm-test-{test.id}",
        )
        futures: dict[Future, int] = {
            executor.submit(self._invoke_node, test, api, node, values, input_payload): index
            for index, node in enumerate(nodes)
        }

        try:
            for future in as_completed(futures, timeout=self.cycle_deadline_seconds):
                index = futures[future]
                node = nodes[index]
                try:
                    outcomes[index] = future.result()
                except Exception as e:
                    logger.error(f"Unexpected error invoking node {node.name}: {e}")
                    outcomes[index] = self._failure_outcome(test, node, input_payload, str(e))
        except FutureTimeoutError:
            logger.warning(
                f"Test '{test.name}': cycle deadline of {self.cycle_deadline_seconds} s exceeded"
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for index, node in enumerate(nodes):
            if index not in outcomes:
                outcomes[index] = self._failure_outcome(
                    test,
                    node,
                    input_payload,
                    f"Cycle deadline exceeded after {self.cycle_deadline_seconds} s",
                )

        return [outcomes[index] for index in range(len(nodes))]

    def _invoke_node(
        self,
        test: SyntheticTest,
        api: ApiDefinition,
        node: Node,
        values: Mapping[str, ParameterValue],
        input_payload: str,
    ) -> ExecutionOutcome:
        result = self.invoker.invoke(api, node, values)
        if not result.success:
            logger.warning(
                f"Test '{test.name}' on node {node.name}: "
                f"status {result.status_code} after {result.response_time_ms} ms"
            )

        return ExecutionOutcome(
            test_id=test.id,
            node_id=node.id,
            status_code=result.status_code,
            success=result.success,
            response_time_ms=max(result.response_time_ms, 0),
            input=input_payload,
            output=_serialize_output(result.payload),
            timestamp=datetime.now(),
        )

    @staticmethod
    def _failure_outcome(
        test: SyntheticTest, node: Node, input_payload: str, message: str
    ) -> ExecutionOutcome:
        """Outcome for a node whose call never produced a result."""
        return ExecutionOutcome(
            test_id=test.id,
            node_id=node.id,
            status_code=0,
            success=False,
            response_time_ms=0,
            input=input_payload,
            output=_serialize_output({"message": message}),
            timestamp=datetime.now(),
        )

    def _record(
        self,
        report: ExecutionReport,
        nodes: list[Node],
        outcomes: list[ExecutionOutcome],
    ) -> None:
        for node, outcome in zip(nodes, outcomes):
            try:
                stored = self.history.append(outcome)
            except PersistenceFailure as e:
                logger.error(f"Failed to record outcome for node {node.name}: {e.message}")
                report.persisted = False
                report.persistence_errors.append(f"node {node.id}: {e.message}")
                stored = outcome
            report.results.append(NodeResult(node_id=node.id, node_name=node.name, outcome=stored))

    def _remember_parameters(
        self, test: SyntheticTest, values: Mapping[str, ParameterValue]
    ) -> None:
        try:
            self.repository.save_test_parameters(test.id, plain_parameters(values))
        except (NotFoundError, PersistenceFailure) as e:
            logger.warning(f"Could not save last-run parameters of test {test.id}: {e.message}")

    @staticmethod
    def _transition(report: ExecutionReport, state: CycleState) -> None:
        logger.debug(f"Test {report.test_id}: {report.state.value} -> {state.value}")
        report.state = state

    @staticmethod
    def _fail(
        report: ExecutionReport, reason: FailureReason, error: MonitorError
    ) -> ExecutionReport:
        logger.warning(f"Test {report.test_id} could not run: {error.message}")
        report.state = CycleState.FAILED
        report.failure_reason = reason
        report.error_message = error.message
        return report
