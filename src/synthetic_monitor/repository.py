"""Catalog repository: nodes, node groups, APIs and synthetic tests."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable

from synthetic_monitor.errors import NotFoundError, ValidationError
from synthetic_monitor.models import (
    ApiDefinition,
    Node,
    NodeGroup,
    NodeStatus,
    SyntheticTest,
)
from synthetic_monitor.validation import (
    validate_api,
    validate_node,
    validate_node_group,
    validate_synthetic_test,
)

logger = logging.getLogger(__name__)


class Repository(ABC):
    """Abstract access to catalog records.

    Lookups return ``None`` when a record does not exist. Reads are
    point-in-time snapshots; no transactional guarantees are made across
    calls.
    """

    @abstractmethod
    def get_node(self, node_id: int) -> Node | None:
        ...

    @abstractmethod
    def get_node_group(self, group_id: int) -> NodeGroup | None:
        ...

    @abstractmethod
    def get_api(self, api_id: int) -> ApiDefinition | None:
        ...

    @abstractmethod
    def get_test(self, test_id: int) -> SyntheticTest | None:
        ...

    @abstractmethod
    def list_nodes(self) -> list[Node]:
        ...

    @abstractmethod
    def list_node_groups(self) -> list[NodeGroup]:
        ...

    @abstractmethod
    def list_tests(self) -> list[SyntheticTest]:
        ...

    @abstractmethod
    def add_node(self, node: Node) -> Node:
        ...

    @abstractmethod
    def add_node_group(self, group: NodeGroup) -> NodeGroup:
        ...

    @abstractmethod
    def add_api(self, api: ApiDefinition) -> ApiDefinition:
        ...

    @abstractmethod
    def add_test(self, test: SyntheticTest) -> SyntheticTest:
        ...

    @abstractmethod
    def update_node_status(
        self, node_id: int, status: NodeStatus, checked_at: datetime
    ) -> Node:
        """Store a node's cached health status.

        Raises:
            NotFoundError: If the node does not exist.
        """
        ...

    @abstractmethod
    def save_test_parameters(self, test_id: int, parameters: dict[str, Any]) -> None:
        """Remember the parameters of a test's last run.

        Raises:
            NotFoundError: If the test does not exist.
        """
        ...


class InMemoryRepository(Repository):
    """Repository kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._nodes: dict[int, Node] = {}
        self._groups: dict[int, NodeGroup] = {}
        self._apis: dict[int, ApiDefinition] = {}
        self._tests: dict[int, SyntheticTest] = {}

    def get_node(self, node_id: int) -> Node | None:
        node = self._nodes.get(node_id)
        return replace(node) if node else None

    def get_node_group(self, group_id: int) -> NodeGroup | None:
        group = self._groups.get(group_id)
        return replace(group, node_ids=list(group.node_ids)) if group else None

    def get_api(self, api_id: int) -> ApiDefinition | None:
        return self._apis.get(api_id)

    def get_test(self, test_id: int) -> SyntheticTest | None:
        test = self._tests.get(test_id)
        if test is None:
            return None
        return replace(test, tags=list(test.tags), parameters=dict(test.parameters))

    def list_nodes(self) -> list[Node]:
        return [replace(n) for n in sorted(self._nodes.values(), key=lambda n: n.id)]

    def list_node_groups(self) -> list[NodeGroup]:
        return [
            replace(g, node_ids=list(g.node_ids))
            for g in sorted(self._groups.values(), key=lambda g: g.id)
        ]

    def list_tests(self) -> list[SyntheticTest]:
        return [self.get_test(test_id) for test_id in sorted(self._tests)]

    def add_node(self, node: Node) -> Node:
        validate_node(node)
        with self._lock:
            self._check_unique(self._nodes, node.id, "Node")
            self._nodes[node.id] = replace(node)
        logger.debug(f"Added node {node.id} ({node.name})")
        return node

    def add_node_group(self, group: NodeGroup) -> NodeGroup:
        validate_node_group(group, self)
        with self._lock:
            self._check_unique(self._groups, group.id, "Node group")
            self._groups[group.id] = replace(group, node_ids=list(group.node_ids))
        logger.debug(f"Added node group {group.id} ({group.name})")
        return group

    def add_api(self, api: ApiDefinition) -> ApiDefinition:
        validate_api(api)
        with self._lock:
            self._check_unique(self._apis, api.id, "API")
            self._apis[api.id] = api
        logger.debug(f"Added API {api.id} ({api.method} {api.uri})")
        return api

    def add_test(self, test: SyntheticTest) -> SyntheticTest:
        validate_synthetic_test(test, self)
        with self._lock:
            self._check_unique(self._tests, test.id, "Synthetic test")
            self._tests[test.id] = replace(
                test, tags=list(test.tags), parameters=dict(test.parameters)
            )
        logger.debug(f"Added synthetic test {test.id} ({test.name})")
        return test

    def remove_node(self, node_id: int) -> bool:
        """Delete a node without touching groups that reference it."""
        with self._lock:
            return self._nodes.pop(node_id, None) is not None

    def remove_test(self, test_id: int) -> bool:
        with self._lock:
            return self._tests.pop(test_id, None) is not None

    def remove_api(self, api_id: int) -> bool:
        """Delete an API; tests that use it fail to run until it is re-added."""
        with self._lock:
            return self._apis.pop(api_id, None) is not None

    def update_node_status(
        self, node_id: int, status: NodeStatus, checked_at: datetime
    ) -> Node:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise NotFoundError("Node", node_id)
            node.status = status
            node.last_checked_at = checked_at
            return replace(node)

    def save_test_parameters(self, test_id: int, parameters: dict[str, Any]) -> None:
        with self._lock:
            test = self._tests.get(test_id)
            if test is None:
                raise NotFoundError("Synthetic test", test_id)
            test.parameters = dict(parameters)

    @staticmethod
    def _check_unique(records: dict[int, Any], record_id: int, kind: str) -> None:
        if record_id in records:
            raise ValidationError(f"{kind} already exists: {record_id}")


def seed_repository(
    repository: Repository,
    nodes: Iterable[Node] = (),
    node_groups: Iterable[NodeGroup] = (),
    apis: Iterable[ApiDefinition] = (),
    tests: Iterable[SyntheticTest] = (),
) -> int:
    """Load catalog records, skipping ids that already exist.

    Records are added in dependency order so that groups and tests can be
    validated against the nodes and APIs they refer to.

    Returns:
        Number of records added.
    """
    added = 0

    for node in nodes:
        if repository.get_node(node.id) is None:
            repository.add_node(node)
            added += 1
    for group in node_groups:
        if repository.get_node_group(group.id) is None:
            repository.add_node_group(group)
            added += 1
    for api in apis:
        if repository.get_api(api.id) is None:
            repository.add_api(api)
            added += 1
    for test in tests:
        if repository.get_test(test.id) is None:
            repository.add_test(test)
            added += 1

    if added:
        logger.info(f"Seeded {added} catalog records")
    return added
