"""Shared fixtures for synthetic monitor tests."""

from typing import Callable

import httpx
import pytest

from synthetic_monitor.history import InMemoryHistoryStore
from synthetic_monitor.invoker import ApiInvoker
from synthetic_monitor.models import (
    ApiDefinition,
    Node,
    NodeGroup,
    ParameterDefinition,
    ParameterType,
    SyntheticTest,
    Target,
    TargetKind,
)
from synthetic_monitor.repository import InMemoryRepository, seed_repository

NODES = [
    Node(id=1, name="web-1", host="10.0.0.1", port=8080),
    Node(id=2, name="web-2", host="10.0.0.2", port=8080),
    Node(id=3, name="api-gateway", host="api.example.com", port=443),
]

GROUPS = [
    NodeGroup(id=1, name="web", node_ids=[1, 2]),
]

APIS = [
    ApiDefinition(id=1, name="Status", method="GET", uri="/api/status"),
    ApiDefinition(
        id=2,
        name="Order lookup",
        method="GET",
        uri="/api/orders/{order_id}",
        parameters=(
            ParameterDefinition(name="order_id", type=ParameterType.PATH, required=True),
            ParameterDefinition(name="verbose", type=ParameterType.QUERY),
        ),
    ),
    ApiDefinition(
        id=3,
        name="Create order",
        method="POST",
        uri="/api/orders",
        parameters=(
            ParameterDefinition(name="sku", type=ParameterType.BODY, required=True),
            ParameterDefinition(name="quantity", type=ParameterType.BODY),
            ParameterDefinition(name="dry_run", type=ParameterType.QUERY),
        ),
    ),
]

TESTS = [
    SyntheticTest(
        id=1,
        name="Web status",
        api_id=1,
        target=Target(kind=TargetKind.GROUP, id=1),
        alert_threshold_ms=500,
        tags=["production", "web"],
    ),
    SyntheticTest(
        id=2,
        name="Order lookup latency",
        api_id=2,
        target=Target(kind=TargetKind.NODE, id=3),
        tags=["production"],
        parameters={"order_id": "1001"},
    ),
]


@pytest.fixture
def catalog() -> dict[str, list]:
    """Catalog records as keyword arguments for seed_repository."""
    return {"nodes": NODES, "node_groups": GROUPS, "apis": APIS, "tests": TESTS}


@pytest.fixture
def repository(catalog) -> InMemoryRepository:
    repo = InMemoryRepository()
    seed_repository(repo, **catalog)
    return repo


@pytest.fixture
def history(repository) -> InMemoryHistoryStore:
    return InMemoryHistoryStore(repository)


@pytest.fixture
def make_invoker() -> Callable[[Callable[[httpx.Request], httpx.Response]], ApiInvoker]:
    """Build an invoker whose HTTP traffic is answered by a handler function."""
    invokers: list[ApiInvoker] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> ApiInvoker:
        invoker = ApiInvoker(client=httpx.Client(transport=httpx.MockTransport(handler)))
        invokers.append(invoker)
        return invoker

    yield factory

    for invoker in invokers:
        invoker.close()
