"""Append-only history of execution outcomes."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from synthetic_monitor.errors import ValidationError
from synthetic_monitor.models import ExecutionOutcome
from synthetic_monitor.repository import Repository

logger = logging.getLogger(__name__)

MAX_TEST_HISTORY_LIMIT = 1000


@dataclass
class HistoryFilters:
    """Search filters for execution history.

    Name filters are case-insensitive substring matches. ``start`` and
    ``end`` are inclusive. ``limit=None`` returns every matching row.
    """

    test_id: int | None = None
    test_name: str | None = None
    node_id: int | None = None
    node_name: str | None = None
    group_name: str | None = None
    tag_name: str | None = None
    success: bool | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = 50
    offset: int = 0


@dataclass
class ExecutionStatistics:
    """Aggregate figures over a test's recent executions."""

    total_executions: int = 0
    success_rate: float = 0.0
    average_response_time_ms: float = 0.0
    max_response_time_ms: int = 0
    min_response_time_ms: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: list[ExecutionOutcome]) -> "ExecutionStatistics":
        if not outcomes:
            return cls()
        times = [o.response_time_ms for o in outcomes]
        succeeded = sum(1 for o in outcomes if o.success)
        return cls(
            total_executions=len(outcomes),
            success_rate=succeeded / len(outcomes) * 100,
            average_response_time_ms=sum(times) / len(times),
            max_response_time_ms=max(times),
            min_response_time_ms=min(times),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "success_rate": self.success_rate,
            "average_response_time_ms": self.average_response_time_ms,
            "max_response_time_ms": self.max_response_time_ms,
            "min_response_time_ms": self.min_response_time_ms,
        }


class HistoryStore(ABC):
    """Persistence of execution outcomes.

    Appends from concurrently running cycles must be safe; rows are never
    updated after they are written.
    """

    @abstractmethod
    def append(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        """Persist an outcome.

        Returns:
            The stored outcome, with its id assigned.

        Raises:
            PersistenceFailure: If the outcome could not be written.
        """
        ...

    @abstractmethod
    def search(self, filters: HistoryFilters) -> tuple[list[ExecutionOutcome], int]:
        """Find outcomes, newest first.

        Returns:
            Tuple of (rows for the requested page, total matching rows).

        Raises:
            PersistenceFailure: If the store could not be read.
        """
        ...

    def test_history(self, test_id: int, limit: int = 100) -> list[ExecutionOutcome]:
        """Most recent outcomes of one test."""
        if not 1 <= limit <= MAX_TEST_HISTORY_LIMIT:
            raise ValidationError(
                f"Invalid limit: {limit}. Must be between 1 and {MAX_TEST_HISTORY_LIMIT}."
            )
        rows, _ = self.search(HistoryFilters(test_id=test_id, limit=limit))
        return rows

    def test_statistics(self, test_id: int, since: datetime) -> ExecutionStatistics:
        rows, _ = self.search(HistoryFilters(test_id=test_id, start=since, limit=None))
        return ExecutionStatistics.from_outcomes(rows)


def _contains(value: str | None, needle: str) -> bool:
    return value is not None and needle.lower() in value.lower()


class InMemoryHistoryStore(HistoryStore):
    """History kept in process memory.

    Name-based filters are resolved through the catalog repository; without
    one, any name filter matches nothing.
    """

    def __init__(self, repository: Repository | None = None) -> None:
        self.repository = repository
        self._lock = threading.Lock()
        self._rows: list[ExecutionOutcome] = []
        self._next_id = 1

    def append(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        with self._lock:
            stored = replace(outcome, id=self._next_id)
            self._next_id += 1
            self._rows.append(stored)
        return stored

    def search(self, filters: HistoryFilters) -> tuple[list[ExecutionOutcome], int]:
        with self._lock:
            rows = list(self._rows)

        matched = [row for row in rows if self._matches(row, filters)]
        matched.sort(key=lambda r: (r.timestamp, r.id or 0), reverse=True)

        total = len(matched)
        page = matched[filters.offset:]
        if filters.limit is not None:
            page = page[:filters.limit]
        return page, total

    def __len__(self) -> int:
        return len(self._rows)

    def _matches(self, row: ExecutionOutcome, filters: HistoryFilters) -> bool:
        if filters.test_id is not None and row.test_id != filters.test_id:
            return False
        if filters.node_id is not None and row.node_id != filters.node_id:
            return False
        if filters.success is not None and row.success != filters.success:
            return False
        if filters.start is not None and row.timestamp < filters.start:
            return False
        if filters.end is not None and row.timestamp > filters.end:
            return False

        if filters.test_name or filters.tag_name:
            test = self.repository.get_test(row.test_id) if self.repository else None
            if test is None:
                return False
            if filters.test_name and not _contains(test.name, filters.test_name):
                return False
            if filters.tag_name and not any(_contains(t, filters.tag_name) for t in test.tags):
                return False

        if filters.node_name:
            node = self.repository.get_node(row.node_id) if self.repository else None
            if node is None or not _contains(node.name, filters.node_name):
                return False

        if filters.group_name:
            if self.repository is None:
                return False
            groups = self.repository.list_node_groups()
            if not any(
                row.node_id in g.node_ids and _contains(g.name, filters.group_name)
                for g in groups
            ):
                return False

        return True
