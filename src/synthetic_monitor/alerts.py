"""Alert derivation from recorded execution history."""

import logging
from datetime import datetime, timedelta

from synthetic_monitor.errors import ParameterDecodeError
from synthetic_monitor.history import HistoryFilters, HistoryStore
from synthetic_monitor.models import (
    Alert,
    ApiDefinition,
    ExecutionOutcome,
    Node,
    SyntheticTest,
)
from synthetic_monitor.parameters import decode_parameters
from synthetic_monitor.repository import Repository

logger = logging.getLogger(__name__)

WINDOWS = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}
DEFAULT_WINDOW = "24h"


def parse_window(window: str | None) -> timedelta:
    """Duration of a named window bucket; unknown names mean 24h."""
    if window not in WINDOWS:
        if window:
            logger.debug(f"Unknown alert window '{window}', using {DEFAULT_WINDOW}")
        return WINDOWS[DEFAULT_WINDOW]
    return WINDOWS[window]


def is_alert(outcome: ExecutionOutcome, test: SyntheticTest) -> bool:
    """Whether an outcome is slow (strictly over threshold) or failed."""
    return not outcome.success or outcome.response_time_ms > test.alert_threshold_ms


class AlertEvaluator:
    """Scan history for slow or failed outcomes within a time window.

    Alerts are never stored; every evaluation reads history afresh, so two
    evaluations of the same closed window return the same alerts.
    """

    PAGE_SIZE = 200

    def __init__(
        self,
        repository: Repository,
        history: HistoryStore,
        max_alerts: int = 100,
    ) -> None:
        self.repository = repository
        self.history = history
        self.max_alerts = max_alerts

    def evaluate(self, window: str | None = DEFAULT_WINDOW, now: datetime | None = None) -> list[Alert]:
        """Alerts for ``[now - window, now]``, newest first.

        Args:
            window: One of ``1h``, ``6h``, ``24h``, ``7d``.
            now: End of the window (defaults to the current time).
        """
        end = now or datetime.now()
        return self.evaluate_range(end - parse_window(window), end)

    def evaluate_range(self, start: datetime, end: datetime) -> list[Alert]:
        """Alerts for outcomes timestamped within ``[start, end]``."""
        alerts: list[Alert] = []
        tests: dict[int, SyntheticTest | None] = {}
        nodes: dict[int, Node | None] = {}
        apis: dict[int, ApiDefinition | None] = {}
        decode_failed = False

        offset = 0
        while len(alerts) < self.max_alerts:
            rows, total = self.history.search(HistoryFilters(
                start=start,
                end=end,
                limit=self.PAGE_SIZE,
                offset=offset,
            ))
            if not rows:
                break

            for outcome in rows:
                if outcome.test_id not in tests:
                    tests[outcome.test_id] = self.repository.get_test(outcome.test_id)
                test = tests[outcome.test_id]
                if test is None:
                    # Test deleted since; its threshold is unknown
                    continue
                if not is_alert(outcome, test):
                    continue

                if outcome.node_id not in nodes:
                    nodes[outcome.node_id] = self.repository.get_node(outcome.node_id)
                if test.api_id not in apis:
                    apis[test.api_id] = self.repository.get_api(test.api_id)

                try:
                    parameter_values = decode_parameters(outcome.input)
                except ParameterDecodeError as e:
                    if not decode_failed:
                        logger.warning(f"Alert input parameters not decodable: {e.message}")
                        decode_failed = True
                    parameter_values = {}

                alerts.append(self._build_alert(
                    outcome, test, nodes[outcome.node_id], apis[test.api_id], parameter_values
                ))
                if len(alerts) >= self.max_alerts:
                    break

            offset += len(rows)
            if offset >= total:
                break

        logger.debug(f"Found {len(alerts)} alerts between {start} and {end}")
        return alerts

    @staticmethod
    def _build_alert(
        outcome: ExecutionOutcome,
        test: SyntheticTest,
        node: Node | None,
        api: ApiDefinition | None,
        parameter_values: dict,
    ) -> Alert:
        return Alert(
            test_id=test.id,
            test_name=test.name,
            node_id=outcome.node_id,
            node_name=node.name if node else None,
            api_id=test.api_id,
            api_name=api.name if api else None,
            api_uri=api.uri if api else None,
            api_method=api.method if api else None,
            response_time_ms=outcome.response_time_ms,
            threshold_ms=test.alert_threshold_ms,
            status_code=outcome.status_code,
            success=outcome.success,
            timestamp=outcome.timestamp,
            parameter_values=parameter_values,
        )
