"""Tests for catalog validation and the in-memory repository."""

from datetime import datetime

import pytest

from synthetic_monitor.errors import NotFoundError, ValidationError
from synthetic_monitor.models import (
    ApiDefinition,
    Node,
    NodeGroup,
    NodeStatus,
    ParameterDefinition,
    ParameterType,
    SyntheticTest,
    Target,
    TargetKind,
)
from synthetic_monitor.repository import InMemoryRepository, seed_repository
from synthetic_monitor.validation import validate_api, validate_node


class TestValidateNode:
    """Tests for node validation."""

    def test_valid(self):
        validate_node(Node(id=1, name="web", host="10.0.0.1", port=80))

    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            validate_node(Node(id=1, name="web", host="10.0.0.1", port=port))

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            validate_node(Node(id=1, name="x" * 51, host="10.0.0.1", port=80))

    def test_blank_host(self):
        with pytest.raises(ValidationError):
            validate_node(Node(id=1, name="web", host="  ", port=80))


class TestValidateApi:
    """Tests for API validation."""

    def test_placeholder_api(self):
        validate_api(ApiDefinition(
            id=1,
            name="Order",
            method="GET",
            uri="/orders/{order_id}",
            parameters=(ParameterDefinition("order_id", ParameterType.PATH, required=True),),
        ))

    def test_unsupported_method(self):
        with pytest.raises(ValidationError):
            validate_api(ApiDefinition(id=1, name="x", method="PATCH", uri="/x"))

    @pytest.mark.parametrize("uri", ["status", "/has space", "/" + "a" * 200])
    def test_bad_uri(self, uri):
        with pytest.raises(ValidationError):
            validate_api(ApiDefinition(id=1, name="x", method="GET", uri=uri))

    def test_undeclared_placeholder(self):
        with pytest.raises(ValidationError) as exc:
            validate_api(ApiDefinition(id=1, name="x", method="GET", uri="/orders/{id}"))
        assert "placeholder" in exc.value.message

    def test_optional_path_parameter(self):
        with pytest.raises(ValidationError):
            validate_api(ApiDefinition(
                id=1,
                name="x",
                method="GET",
                uri="/orders/{id}",
                parameters=(ParameterDefinition("id", ParameterType.PATH, required=False),),
            ))

    def test_duplicate_parameter(self):
        with pytest.raises(ValidationError):
            validate_api(ApiDefinition(
                id=1,
                name="x",
                method="GET",
                uri="/x",
                parameters=(ParameterDefinition("a"), ParameterDefinition("a")),
            ))


class TestInMemoryRepository:
    """Tests for the in-memory catalog."""

    def test_lookup(self, repository):
        assert repository.get_node(1).name == "web-1"
        assert repository.get_node_group(1).node_ids == [1, 2]
        assert repository.get_api(2).name == "Order lookup"
        assert repository.get_test(2).parameters == {"order_id": "1001"}
        assert repository.get_test(99) is None

    def test_returns_copies(self, repository):
        test = repository.get_test(1)
        test.tags.append("mutated")
        assert "mutated" not in repository.get_test(1).tags

    def test_duplicate_id_rejected(self, repository):
        with pytest.raises(ValidationError):
            repository.add_node(Node(id=1, name="dup", host="10.0.0.9", port=80))

    def test_group_requires_existing_nodes(self, repository):
        with pytest.raises(ValidationError):
            repository.add_node_group(NodeGroup(id=2, name="bad", node_ids=[1, 42]))

    def test_group_requires_members(self, repository):
        with pytest.raises(ValidationError):
            repository.add_node_group(NodeGroup(id=2, name="empty", node_ids=[]))

    def test_test_requires_existing_target(self, repository):
        with pytest.raises(ValidationError):
            repository.add_test(SyntheticTest(
                id=5, name="orphan", api_id=1, target=Target(TargetKind.NODE, 42)
            ))

    def test_test_rejects_unknown_parameter(self, repository):
        with pytest.raises(ValidationError):
            repository.add_test(SyntheticTest(
                id=5,
                name="bad params",
                api_id=2,
                target=Target(TargetKind.NODE, 3),
                parameters={"color": "red"},
            ))

    def test_test_may_omit_required_parameter(self, repository):
        repository.add_test(SyntheticTest(
            id=5, name="later", api_id=2, target=Target(TargetKind.NODE, 3)
        ))
        assert repository.get_test(5).parameters == {}

    @pytest.mark.parametrize("threshold", [-1, 60001])
    def test_threshold_range(self, repository, threshold):
        with pytest.raises(ValidationError):
            repository.add_test(SyntheticTest(
                id=5,
                name="t",
                api_id=1,
                target=Target(TargetKind.NODE, 1),
                alert_threshold_ms=threshold,
            ))

    def test_update_node_status(self, repository):
        checked = datetime(2024, 1, 1, 12, 0)
        node = repository.update_node_status(1, NodeStatus.WARNING, checked)
        assert node.status == NodeStatus.WARNING
        assert repository.get_node(1).last_checked_at == checked

    def test_update_missing_node(self, repository):
        with pytest.raises(NotFoundError):
            repository.update_node_status(42, NodeStatus.ERROR, datetime.now())

    def test_save_test_parameters(self, repository):
        repository.save_test_parameters(2, {"order_id": "2002"})
        assert repository.get_test(2).parameters == {"order_id": "2002"}

    def test_save_parameters_missing_test(self, repository):
        with pytest.raises(NotFoundError):
            repository.save_test_parameters(42, {})


class TestSeedRepository:
    def test_skips_existing(self, repository):
        added = seed_repository(
            repository,
            nodes=[
                Node(id=1, name="renamed", host="10.0.0.1", port=80),
                Node(id=4, name="db", host="10.0.0.4", port=5432),
            ],
        )
        assert added == 1
        assert repository.get_node(1).name == "web-1"
        assert repository.get_node(4).name == "db"

    def test_empty_repository(self):
        assert seed_repository(InMemoryRepository()) == 0
