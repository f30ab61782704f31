"""Core synthetic monitoring logic."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Mapping

from synthetic_monitor.alerts import AlertEvaluator
from synthetic_monitor.config import Config
from synthetic_monitor.dispatcher import TestDispatcher
from synthetic_monitor.errors import NotFoundError
from synthetic_monitor.history import HistoryFilters, HistoryStore
from synthetic_monitor.invoker import ApiInvoker
from synthetic_monitor.models import (
    Alert,
    ExecutionOutcome,
    ExecutionReport,
    Node,
    NodeHealthReport,
    NodeStatus,
    ProbeResult,
)
from synthetic_monitor.notifiers import BaseNotifier, build_notifiers
from synthetic_monitor.probe import HealthProbe
from synthetic_monitor.repository import Repository, seed_repository
from synthetic_monitor.storage import create_storage

logger = logging.getLogger(__name__)


class SyntheticMonitor:
    """Main synthetic monitoring orchestrator."""

    def __init__(
        self,
        config: Config,
        repository: Repository | None = None,
        history: HistoryStore | None = None,
        probe: HealthProbe | None = None,
        invoker: ApiInvoker | None = None,
        notifiers: list[BaseNotifier] | None = None,
    ) -> None:
        """Initialize synthetic monitor.

        Args:
            config: Configuration object.
            repository: Catalog store; built from ``config.storage`` when omitted.
            history: History store; built together with the repository when omitted.
            probe: Health probe (defaults to one from ``config.probe``).
            invoker: API invoker (defaults to one from ``config.invoker``).
            notifiers: Alert notifiers (defaults to those in ``config.notifiers``).
        """
        self.config = config

        self._engine = None
        if repository is None or history is None:
            default_repository, default_history = create_storage(config.storage)
            self._engine = getattr(default_repository, "engine", None)
            repository = repository or default_repository
            history = history or default_history
        self.repository = repository
        self.history = history

        catalog = config.catalog
        added = seed_repository(
            self.repository,
            nodes=catalog.nodes,
            node_groups=catalog.node_groups,
            apis=catalog.apis,
            tests=catalog.synthetic_tests,
        )
        if added:
            logger.info(f"Loaded {added} catalog records")

        self.probe = probe or HealthProbe(
            timeout_ms=config.probe.timeout_ms,
            health_path=config.probe.health_path,
        )
        self.invoker = invoker or ApiInvoker(
            timeout_seconds=config.invoker.timeout_seconds,
            headers=config.invoker.headers,
        )

        deadline = config.dispatch.cycle_deadline_seconds
        if deadline is None:
            deadline = self.invoker.timeout_seconds + config.dispatch.deadline_slack_seconds

        self.dispatcher = TestDispatcher(
            repository=self.repository,
            history=self.history,
            invoker=self.invoker,
            max_workers=config.dispatch.max_workers,
            cycle_deadline_seconds=deadline,
        )
        self.evaluator = AlertEvaluator(
            repository=self.repository,
            history=self.history,
            max_alerts=config.alerts.max_alerts,
        )
        self.notifiers = notifiers if notifiers is not None else build_notifiers(config.notifiers)
        self._alert_cooldown: dict[tuple[int, int, str], datetime] = {}  # Prevent alert spam

    def execute_synthetic_test(
        self,
        test_id: int,
        override_parameters: Mapping[str, Any] | None = None,
    ) -> ExecutionReport:
        """Run a synthetic test on all of its target nodes."""
        logger.info(f"Executing synthetic test {test_id}")
        return self.dispatcher.execute(test_id, override_parameters)

    def check_node_health(self, node_id: int) -> NodeHealthReport:
        """Probe a node and update its cached status.

        Args:
            node_id: Node to check.

        Returns:
            NodeHealthReport with the probe result and assigned status.

        Raises:
            NotFoundError: If the node does not exist.
        """
        node = self.repository.get_node(node_id)
        if node is None:
            raise NotFoundError("Node", node_id)

        logger.info(f"Checking health of node: {node.name}")
        result = self.probe.probe(node.host, node.port)
        return self._apply_probe(node, result)

    def check_all_nodes(self) -> list[NodeHealthReport]:
        """Check health of every node in the catalog."""
        nodes = self.repository.list_nodes()
        if not nodes:
            logger.warning("No nodes configured")
            return []

        reports: list[NodeHealthReport] = []
        with ThreadPoolExecutor(max_workers=min(self.config.dispatch.max_workers, len(nodes))) as executor:
            futures = {
                executor.submit(self.probe.probe, node.host, node.port): node
                for node in nodes
            }

            for future in as_completed(futures):
                node = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Failed to check node {node.name}: {e}")
                    result = ProbeResult(
                        success=False,
                        response_time_ms=0,
                        check_type="unknown",
                        error_message=str(e),
                    )
                try:
                    reports.append(self._apply_probe(node, result))
                except NotFoundError:
                    logger.warning(f"Node {node.name} was removed during the check")

        reports.sort(key=lambda r: r.node_id)
        return reports

    def list_alerts(self, window: str | None = None) -> list[Alert]:
        """Slow or failed outcomes within a named window (default from config)."""
        return self.evaluator.evaluate(window or self.config.alerts.default_window)

    def notify_alerts(self, alerts: list[Alert]) -> int:
        """Deliver alerts to the configured notifiers.

        The same (test, node, reason) is not re-sent within the cooldown.

        Returns:
            Number of alerts delivered by at least one notifier.
        """
        if not self.notifiers:
            return 0

        sent = 0
        now = datetime.now()
        for alert in alerts:
            cooldown_key = (alert.test_id, alert.node_id, alert.reason)
            last_alert = self._alert_cooldown.get(cooldown_key)
            if last_alert and (now - last_alert).total_seconds() < self.config.alerts.cooldown_seconds:
                continue

            delivered = False
            for notifier in self.notifiers:
                if notifier.send_alert(alert):
                    delivered = True
            if delivered:
                self._alert_cooldown[cooldown_key] = now
                sent += 1

        logger.info(f"Delivered {sent} of {len(alerts)} alerts")
        return sent

    def search_history(self, filters: HistoryFilters) -> tuple[list[ExecutionOutcome], int]:
        """Search execution history; returns the page and the total match count."""
        return self.history.search(filters)

    def get_summary(self) -> dict:
        """Get a summary of node health and recent alerts."""
        nodes = self.repository.list_nodes()
        counts = {status.value: 0 for status in NodeStatus}
        for node in nodes:
            counts[node.status.value] += 1
        return {
            "nodes": {"total": len(nodes), **counts},
            "tests": len(self.repository.list_tests()),
            "alerts": len(self.list_alerts()),
        }

    def close(self) -> None:
        self.probe.close()
        self.invoker.close()
        if self._engine is not None:
            self._engine.dispose()

    def _apply_probe(self, node: Node, result: ProbeResult) -> NodeHealthReport:
        if not result.success:
            status = NodeStatus.ERROR
        elif result.response_time_ms >= self.config.probe.warning_ms:
            status = NodeStatus.WARNING
        else:
            status = NodeStatus.HEALTHY

        checked_at = datetime.now()
        self.repository.update_node_status(node.id, status, checked_at)
        return NodeHealthReport(
            node_id=node.id,
            node_name=node.name,
            probe=result,
            status=status,
            checked_at=checked_at,
        )
