"""Tests for alert notifiers."""

import json
from datetime import datetime

import httpx
import pytest

from synthetic_monitor.config import NotifierConfig
from synthetic_monitor.models import Alert
from synthetic_monitor.notifiers import SlackNotifier, WebhookNotifier, build_notifiers


@pytest.fixture
def alert() -> Alert:
    return Alert(
        test_id=2,
        test_name="Order lookup latency",
        node_id=3,
        node_name="api-gateway",
        api_id=2,
        api_name="Order lookup",
        api_uri="/api/orders/{order_id}",
        api_method="GET",
        response_time_ms=1500,
        threshold_ms=1000,
        status_code=200,
        success=True,
        timestamp=datetime(2024, 6, 1, 12, 0),
        parameter_values={"order_id": "1001"},
    )


class TestFormatAlert:
    def test_includes_context(self, alert):
        text = WebhookNotifier(url="http://hooks.local/alert").format_alert(alert)
        assert "Order lookup latency" in text
        assert "api-gateway" in text
        assert "GET /api/orders/{order_id}" in text
        assert "order_id: 1001" in text


class TestWebhookNotifier:
    """Tests for WebhookNotifier."""

    def test_sends_payload(self, alert):
        received = []

        def handler(request):
            received.append((request.method, json.loads(request.content)))
            return httpx.Response(204)

        notifier = WebhookNotifier(
            url="http://hooks.local/alert",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        assert notifier.send_alert(alert)

        method, payload = received[0]
        assert method == "POST"
        assert payload["reason"] == "slow"
        assert payload["alert"]["node_name"] == "api-gateway"

    def test_error_status(self, alert):
        notifier = WebhookNotifier(
            url="http://hooks.local/alert",
            client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
        )
        assert not notifier.send_alert(alert)

    def test_network_error(self, alert):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        notifier = WebhookNotifier(
            url="http://hooks.local/alert",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        assert not notifier.send_alert(alert)


class TestSlackNotifier:
    def test_payload(self, alert):
        payload = SlackNotifier(webhook_url="https://hooks.slack.test/x", channel="#ops")._build_alert_payload(alert)
        assert payload["channel"] == "#ops"
        attachment = payload["attachments"][0]
        assert attachment["color"] == "warning"
        assert attachment["title"] == "Order lookup latency - SLOW"


class TestBuildNotifiers:
    def test_none_configured(self):
        assert build_notifiers(NotifierConfig()) == []

    def test_configured(self):
        notifiers = build_notifiers(NotifierConfig(
            slack={"webhook_url": "https://hooks.slack.test/x"},
            webhook={"url": "http://hooks.local/alert", "auth": {"username": "u", "password": "p"}},
        ))
        assert [type(n) for n in notifiers] == [SlackNotifier, WebhookNotifier]
        assert notifiers[1].auth == ("u", "p")
