"""
Synthetic Test Monitor - run API checks across node fleets and alert on slow or failed calls.

Executes configured API calls against every node a synthetic test targets,
records each outcome, probes node health and derives alerts from history.
"""

__version__ = "1.0.0"

from synthetic_monitor.config import Config
from synthetic_monitor.models import (
    Alert,
    ExecutionOutcome,
    ExecutionReport,
    Node,
    NodeGroup,
    SyntheticTest,
)
from synthetic_monitor.monitor import SyntheticMonitor

__all__ = [
    "Alert",
    "Config",
    "ExecutionOutcome",
    "ExecutionReport",
    "Node",
    "NodeGroup",
    "SyntheticMonitor",
    "SyntheticTest",
]
