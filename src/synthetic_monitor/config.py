"""Configuration management for Synthetic Test Monitor."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

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


@dataclass
class ProbeConfig:
    """Node health probe settings."""

    timeout_ms: int = 5000
    health_path: str = "/health"
    warning_ms: int = 2000  # Successful but slower than this is "warning"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProbeConfig":
        return cls(
            timeout_ms=data.get("timeout_ms", 5000),
            health_path=data.get("health_path", "/health"),
            warning_ms=data.get("warning_ms", 2000),
        )


@dataclass
class InvokerConfig:
    """API invocation settings."""

    timeout_seconds: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InvokerConfig":
        return cls(
            timeout_seconds=data.get("timeout_seconds", 10.0),
            headers=data.get("headers", {}),
        )


@dataclass
class DispatchConfig:
    """Execution cycle fan-out settings."""

    max_workers: int = 10
    cycle_deadline_seconds: float | None = None  # Default: invoker timeout + slack
    deadline_slack_seconds: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DispatchConfig":
        return cls(
            max_workers=data.get("max_workers", 10),
            cycle_deadline_seconds=data.get("cycle_deadline_seconds"),
            deadline_slack_seconds=data.get("deadline_slack_seconds", 5.0),
        )


@dataclass
class AlertConfig:
    """Alert evaluation and notification settings."""

    default_window: str = "24h"
    max_alerts: int = 100
    cooldown_seconds: int = 300

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertConfig":
        return cls(
            default_window=data.get("default_window", "24h"),
            max_alerts=data.get("max_alerts", 100),
            cooldown_seconds=data.get("cooldown_seconds", 300),
        )


@dataclass
class StorageConfig:
    """Where catalog and history are kept."""

    backend: str = "memory"  # "memory" or "sql"
    url: str = "sqlite:///stm.db"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        backend = data.get("backend", "memory")
        if backend not in ("memory", "sql"):
            raise ValueError(f"Unknown storage backend: {backend}")
        return cls(
            backend=backend,
            url=data.get("url", "sqlite:///stm.db"),
        )


@dataclass
class NotifierConfig:
    """Configuration for alert notifiers."""

    slack: dict[str, Any] | None = None
    webhook: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotifierConfig":
        return cls(
            slack=data.get("slack"),
            webhook=data.get("webhook"),
        )


@dataclass
class DashboardConfig:
    """HTTP API configuration."""

    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashboardConfig":
        return cls(
            host=data.get("host", "0.0.0.0"),
            port=data.get("port", 8080),
        )


@dataclass
class CatalogConfig:
    """Nodes, groups, APIs and tests loaded into the repository at startup."""

    nodes: list[Node] = field(default_factory=list)
    node_groups: list[NodeGroup] = field(default_factory=list)
    apis: list[ApiDefinition] = field(default_factory=list)
    synthetic_tests: list[SyntheticTest] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogConfig":
        return cls(
            nodes=[Node.from_dict(d) for d in data.get("nodes", [])],
            node_groups=[NodeGroup.from_dict(d) for d in data.get("node_groups", [])],
            apis=[ApiDefinition.from_dict(d) for d in data.get("apis", [])],
            synthetic_tests=[SyntheticTest.from_dict(d) for d in data.get("synthetic_tests", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        nodes = []
        for node in self.nodes:
            node_data = node.to_dict()
            del node_data["last_checked_at"]
            nodes.append(node_data)
        return {
            "nodes": nodes,
            "node_groups": [g.to_dict() for g in self.node_groups],
            "apis": [a.to_dict() for a in self.apis],
            "synthetic_tests": [t.to_dict() for t in self.synthetic_tests],
        }


@dataclass
class Config:
    """Main configuration for Synthetic Test Monitor."""

    probe: ProbeConfig = field(default_factory=ProbeConfig)
    invoker: InvokerConfig = field(default_factory=InvokerConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    notifiers: NotifierConfig = field(default_factory=NotifierConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create configuration from dictionary."""
        return cls(
            probe=ProbeConfig.from_dict(data.get("probe", {})),
            invoker=InvokerConfig.from_dict(data.get("invoker", {})),
            dispatch=DispatchConfig.from_dict(data.get("dispatch", {})),
            alerts=AlertConfig.from_dict(data.get("alerts", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            notifiers=NotifierConfig.from_dict(data.get("notifiers", {})),
            dashboard=DashboardConfig.from_dict(data.get("dashboard", {})),
            catalog=CatalogConfig.from_dict(data.get("catalog", {})),
            log_level=data.get("log_level", "INFO"),
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self._to_dict()
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "probe": {
                "timeout_ms": self.probe.timeout_ms,
                "health_path": self.probe.health_path,
                "warning_ms": self.probe.warning_ms,
            },
            "invoker": {
                "timeout_seconds": self.invoker.timeout_seconds,
            },
            "dispatch": {
                "max_workers": self.dispatch.max_workers,
                "deadline_slack_seconds": self.dispatch.deadline_slack_seconds,
            },
            "alerts": {
                "default_window": self.alerts.default_window,
                "max_alerts": self.alerts.max_alerts,
                "cooldown_seconds": self.alerts.cooldown_seconds,
            },
            "storage": {
                "backend": self.storage.backend,
                "url": self.storage.url,
            },
            "dashboard": {
                "host": self.dashboard.host,
                "port": self.dashboard.port,
            },
            "log_level": self.log_level,
            "catalog": self.catalog.to_dict(),
        }
        if self.invoker.headers:
            data["invoker"]["headers"] = dict(self.invoker.headers)
        if self.dispatch.cycle_deadline_seconds is not None:
            data["dispatch"]["cycle_deadline_seconds"] = self.dispatch.cycle_deadline_seconds

        notifiers: dict[str, Any] = {}
        if self.notifiers.slack:
            notifiers["slack"] = dict(self.notifiers.slack)
        if self.notifiers.webhook:
            notifiers["webhook"] = dict(self.notifiers.webhook)
        if notifiers:
            data["notifiers"] = notifiers
        return data


def create_example_config() -> Config:
    """Create an example configuration for documentation."""
    return Config(
        storage=StorageConfig(backend="sql"),
        catalog=CatalogConfig(
            nodes=[
                Node(id=1, name="web-server-1", host="192.168.1.10", port=8080,
                     description="Primary web server"),
                Node(id=2, name="web-server-2", host="192.168.1.11", port=8080,
                     description="Secondary web server"),
                Node(id=3, name="api-gateway", host="api.example.com", port=443,
                     description="Public API gateway"),
            ],
            node_groups=[
                NodeGroup(id=1, name="web", node_ids=[1, 2], description="Web tier"),
            ],
            apis=[
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
            ],
            synthetic_tests=[
                SyntheticTest(
                    id=1,
                    name="Web status",
                    api_id=1,
                    target=Target(kind=TargetKind.GROUP, id=1),
                    interval_seconds=60,
                    alert_threshold_ms=500,
                    tags=["production", "web"],
                ),
                SyntheticTest(
                    id=2,
                    name="Order lookup latency",
                    api_id=2,
                    target=Target(kind=TargetKind.NODE, id=3),
                    interval_seconds=300,
                    alert_threshold_ms=1000,
                    tags=["production"],
                    parameters={"order_id": "1001"},
                ),
            ],
        ),
    )
