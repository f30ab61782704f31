"""Expansion of synthetic test targets into concrete nodes."""

import logging

from synthetic_monitor.models import Node, SyntheticTest, TargetKind
from synthetic_monitor.repository import Repository

logger = logging.getLogger(__name__)


class TargetResolver:
    """Turn a test's target descriptor into an ordered list of live nodes."""

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    def resolve(self, test: SyntheticTest) -> list[Node]:
        """Resolve the nodes a test should run against.

        A missing node or group resolves to an empty list. Group members that
        no longer exist are skipped, and repeated member ids are only resolved
        once. Group order is preserved.
        """
        if test.target.kind == TargetKind.NODE:
            node = self.repository.get_node(test.target.id)
            if node is None:
                logger.warning(f"Test {test.id}: target node {test.target.id} not found")
                return []
            return [node]

        group = self.repository.get_node_group(test.target.id)
        if group is None:
            logger.warning(f"Test {test.id}: target group {test.target.id} not found")
            return []

        nodes: list[Node] = []
        seen: set[int] = set()
        for node_id in group.node_ids:
            if node_id in seen:
                continue
            seen.add(node_id)

            node = self.repository.get_node(node_id)
            if node is None:
                logger.debug(f"Group {group.name}: skipping missing node {node_id}")
                continue
            nodes.append(node)

        return nodes
