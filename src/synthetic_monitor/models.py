"""Data models for synthetic testing."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NodeStatus(str, Enum):
    """Cached health classification of a node."""

    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


class TargetKind(str, Enum):
    """What a synthetic test is pointed at."""

    NODE = "node"
    GROUP = "group"


class ParameterType(str, Enum):
    """Where a parameter is placed in the outgoing request."""

    PATH = "path"
    QUERY = "query"
    BODY = "body"


class CycleState(str, Enum):
    """States of a single execution cycle."""

    RESOLVING = "resolving"
    DISPATCHING = "dispatching"
    RECORDING = "recording"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why an execution cycle could not start."""

    TEST_NOT_FOUND = "test_not_found"
    API_NOT_FOUND = "api_not_found"
    NO_TARGETS = "no_targets"
    VALIDATION_ERROR = "validation_error"


@dataclass
class Node:
    """A monitored network endpoint."""

    id: int
    name: str
    host: str
    port: int
    status: NodeStatus = NodeStatus.HEALTHY
    last_checked_at: datetime | None = None
    description: str = ""

    @property
    def address(self) -> str:
        """host:port suitable for a URL (IPv6 literals are bracketed)."""
        if ":" in self.host and not self.host.startswith("["):
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            host=data["host"],
            port=int(data["port"]),
            status=NodeStatus(data.get("status", "healthy")),
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "status": self.status.value,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "description": self.description,
        }


@dataclass
class NodeGroup:
    """A named, ordered set of node ids used as a fan-out target."""

    id: int
    name: str
    node_ids: list[int] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeGroup":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            node_ids=[int(n) for n in data.get("node_ids", [])],
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "node_ids": list(self.node_ids),
            "description": self.description,
        }


@dataclass(frozen=True)
class ParameterDefinition:
    """A parameter declared by an API."""

    name: str
    type: ParameterType = ParameterType.QUERY
    required: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParameterDefinition":
        return cls(
            name=data["name"],
            type=ParameterType(data.get("type", "query")),
            required=bool(data.get("required", False)),
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
            "description": self.description,
        }


@dataclass(frozen=True)
class ApiDefinition:
    """An HTTP API that can be called on a node."""

    id: int
    name: str
    method: str
    uri: str
    parameters: tuple[ParameterDefinition, ...] = ()

    def get_parameter(self, name: str) -> ParameterDefinition | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiDefinition":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            method=data.get("method", "GET").upper(),
            uri=data["uri"],
            parameters=tuple(
                ParameterDefinition.from_dict(p) for p in data.get("parameters", [])
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "method": self.method,
            "uri": self.uri,
            "parameters": [p.to_dict() for p in self.parameters],
        }


@dataclass(frozen=True)
class Target:
    """Target descriptor of a synthetic test."""

    kind: TargetKind
    id: int


@dataclass
class SyntheticTest:
    """Call an API against a target on a cadence, alerting above a latency."""

    id: int
    name: str
    api_id: int
    target: Target
    interval_seconds: int = 60
    alert_threshold_ms: int = 1000
    tags: list[str] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)  # Last-run values

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyntheticTest":
        target = data.get("target", {})
        return cls(
            id=int(data["id"]),
            name=data["name"],
            api_id=int(data["api_id"]),
            target=Target(
                kind=TargetKind(target.get("kind", "node")),
                id=int(target["id"]),
            ),
            interval_seconds=int(data.get("interval_seconds", 60)),
            alert_threshold_ms=int(data.get("alert_threshold_ms", 1000)),
            tags=list(data.get("tags", [])),
            parameters=dict(data.get("parameters", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "api_id": self.api_id,
            "target": {"kind": self.target.kind.value, "id": self.target.id},
            "interval_seconds": self.interval_seconds,
            "alert_threshold_ms": self.alert_threshold_ms,
            "tags": list(self.tags),
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class ExecutionOutcome:
    """One immutable record of an API invocation against a node."""

    test_id: int
    node_id: int
    status_code: int
    success: bool
    response_time_ms: int
    input: str
    output: str
    timestamp: datetime = field(default_factory=datetime.now)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "test_id": self.test_id,
            "node_id": self.node_id,
            "status_code": self.status_code,
            "success": self.success,
            "response_time_ms": self.response_time_ms,
            "input": self.input,
            "output": self.output,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProbeResult:
    """Result of a single reachability check."""

    success: bool
    response_time_ms: int
    check_type: str  # "ip" or "url"
    error_message: str | None = None
    status_code: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "response_time_ms": self.response_time_ms,
            "check_type": self.check_type,
            "error_message": self.error_message,
            "status_code": self.status_code,
        }


@dataclass
class InvocationResult:
    """Result of calling an API on one node."""

    success: bool
    status_code: int
    response_time_ms: int
    data: Any = None
    error: dict[str, Any] | None = None

    @property
    def payload(self) -> Any:
        """Response payload, or the error payload when the call failed."""
        if self.error is not None:
            return self.error
        return self.data


@dataclass
class NodeResult:
    """Outcome of one node within an execution report."""

    node_id: int
    node_name: str
    outcome: ExecutionOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            **{k: v for k, v in self.outcome.to_dict().items() if k not in ("node_id", "test_id")},
        }


@dataclass
class ExecutionReport:
    """Aggregated result of one execution cycle."""

    test_id: int
    test_name: str | None
    executed_at: datetime = field(default_factory=datetime.now)
    state: CycleState = CycleState.RESOLVING
    failure_reason: FailureReason | None = None
    error_message: str | None = None
    results: list[NodeResult] = field(default_factory=list)
    persisted: bool = True
    persistence_errors: list[str] = field(default_factory=list)

    @property
    def started(self) -> bool:
        """False when the cycle could not start at all."""
        return self.state != CycleState.FAILED

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for r in self.results if r.outcome.success)

    @property
    def failed_count(self) -> int:
        return self.total - self.succeeded_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_id": self.test_id,
            "test_name": self.test_name,
            "executed_at": self.executed_at.isoformat(),
            "state": self.state.value,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "error_message": self.error_message,
            "summary": {
                "total": self.total,
                "succeeded": self.succeeded_count,
                "failed": self.failed_count,
            },
            "persisted": self.persisted,
            "persistence_errors": list(self.persistence_errors),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class Alert:
    """A slow or failed outcome, joined with display fields at read time."""

    test_id: int
    test_name: str
    node_id: int
    node_name: str | None
    api_id: int
    api_name: str | None
    api_uri: str | None
    api_method: str | None
    response_time_ms: int
    threshold_ms: int
    status_code: int
    success: bool
    timestamp: datetime
    parameter_values: dict[str, Any] = field(default_factory=dict)

    @property
    def reason(self) -> str:
        return "failed" if not self.success else "slow"

    @property
    def message(self) -> str:
        if not self.success:
            return f"Call failed with status {self.status_code}"
        return f"Response time {self.response_time_ms} ms exceeds threshold {self.threshold_ms} ms"

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_id": self.test_id,
            "test_name": self.test_name,
            "node_id": self.node_id,
            "node_name": self.node_name,
            "api_id": self.api_id,
            "api_name": self.api_name,
            "api_uri": self.api_uri,
            "api_method": self.api_method,
            "parameter_values": self.parameter_values,
            "response_time_ms": self.response_time_ms,
            "threshold_ms": self.threshold_ms,
            "status_code": self.status_code,
            "success": self.success,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class NodeHealthReport:
    """Result of a node health check, including the status it was given."""

    node_id: int
    node_name: str
    probe: ProbeResult
    status: NodeStatus
    checked_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "status": self.status.value,
            "checked_at": self.checked_at.isoformat(),
            **self.probe.to_dict(),
        }
