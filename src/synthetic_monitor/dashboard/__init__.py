"""HTTP API for the synthetic monitor."""

from synthetic_monitor.dashboard.app import create_app

__all__ = ["create_app"]
