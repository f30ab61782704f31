"""FastAPI application exposing test execution, history and alerts."""

import asyncio
from datetime import datetime
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Query

from synthetic_monitor import __version__
from synthetic_monitor.alerts import DEFAULT_WINDOW
from synthetic_monitor.config import Config
from synthetic_monitor.errors import NotFoundError, ValidationError
from synthetic_monitor.history import HistoryFilters
from synthetic_monitor.models import CycleState, FailureReason
from synthetic_monitor.monitor import SyntheticMonitor

NOT_FOUND_REASONS = (FailureReason.TEST_NOT_FOUND, FailureReason.API_NOT_FOUND)

SUCCESS_FILTERS = {"Y": True, "N": False, "all": None}


def create_app(config: Config, monitor: SyntheticMonitor | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        config: Application configuration.
        monitor: Optional prebuilt monitor (defaults to one over ``config``).

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Synthetic Test Monitor",
        description="Synthetic API tests across node fleets",
        version=__version__,
    )

    monitor = monitor or SyntheticMonitor(config)

    app.state.config = config
    app.state.monitor = monitor

    @app.post("/api/synthetic-tests/{test_id}/execute")
    async def execute_test(
        test_id: int,
        payload: dict[str, Any] | None = Body(default=None),
    ) -> dict:
        """Run a synthetic test on all of its nodes."""
        parameters = (payload or {}).get("parameters") or {}
        if not isinstance(parameters, dict):
            raise HTTPException(status_code=400, detail="parameters must be an object")

        report = await asyncio.to_thread(monitor.execute_synthetic_test, test_id, parameters)

        if report.state == CycleState.FAILED:
            status_code = 404 if report.failure_reason in NOT_FOUND_REASONS else 400
            raise HTTPException(status_code=status_code, detail=report.error_message)

        return report.to_dict()

    @app.get("/api/synthetic-tests/{test_id}/history")
    async def test_history(test_id: int, limit: int = 100) -> dict:
        """Most recent outcomes of a test."""
        try:
            rows = await asyncio.to_thread(monitor.history.test_history, test_id, limit)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=e.message) from e

        return {
            "test_id": test_id,
            "count": len(rows),
            "results": [row.to_dict() for row in rows],
        }

    @app.post("/api/nodes/{node_id}/health")
    async def check_node(node_id: int) -> dict:
        """Probe a node and update its status."""
        try:
            report = await asyncio.to_thread(monitor.check_node_health, node_id)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message) from e
        return report.to_dict()

    @app.get("/api/alerts")
    async def alerts(time_range: str = Query(DEFAULT_WINDOW, alias="timeRange")) -> dict:
        """Slow or failed outcomes within a time range."""
        found = await asyncio.to_thread(monitor.list_alerts, time_range)
        return {
            "time_range": time_range,
            "count": len(found),
            "alerts": [a.to_dict() for a in found],
        }

    @app.get("/api/history")
    async def history(
        test_name: str | None = Query(None, alias="testName"),
        node_name: str | None = Query(None, alias="nodeName"),
        group_name: str | None = Query(None, alias="groupName"),
        tag_name: str | None = Query(None, alias="tagName"),
        success: str = "all",
        start: datetime | None = Query(None, alias="startDate"),
        end: datetime | None = Query(None, alias="endDate"),
        limit: int = Query(50, ge=1, le=1000),
        offset: int = Query(0, ge=0),
    ) -> dict:
        """Search execution history."""
        if success not in SUCCESS_FILTERS:
            raise HTTPException(status_code=400, detail="success must be one of Y, N, all")

        filters = HistoryFilters(
            test_name=test_name,
            node_name=node_name,
            group_name=group_name,
            tag_name=tag_name,
            success=SUCCESS_FILTERS[success],
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        rows, total = await asyncio.to_thread(monitor.search_history, filters)
        return {
            "total": total,
            "limit": limit,
            "offset": offset,
            "results": [row.to_dict() for row in rows],
        }

    @app.get("/health")
    async def healthcheck() -> dict:
        """Application health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
        }

    return app
