"""Slack notification handler."""

import logging

import httpx

from synthetic_monitor.models import Alert
from synthetic_monitor.notifiers.base import BaseNotifier

logger = logging.getLogger(__name__)


class SlackNotifier(BaseNotifier):
    """Send alerts via Slack webhook."""

    def __init__(self, webhook_url: str, channel: str | None = None) -> None:
        """Initialize Slack notifier.

        Args:
            webhook_url: Slack incoming webhook URL.
            channel: Optional channel override.
        """
        self.webhook_url = webhook_url
        self.channel = channel

    def send_alert(self, alert: Alert) -> bool:
        """Send alert via Slack."""
        return self._send_webhook(self._build_alert_payload(alert))

    def _build_alert_payload(self, alert: Alert) -> dict:
        """Build Slack message payload with an attachment."""
        color = "danger" if alert.reason == "failed" else "warning"
        node = alert.node_name or f"node {alert.node_id}"

        fields = [
            {"title": "Node", "value": node, "short": True},
            {"title": "Status code", "value": str(alert.status_code), "short": True},
            {"title": "Response time", "value": f"{alert.response_time_ms} ms", "short": True},
            {"title": "Threshold", "value": f"{alert.threshold_ms} ms", "short": True},
        ]
        if alert.api_uri:
            fields.append({
                "title": "API",
                "value": f"{alert.api_method} {alert.api_uri}",
                "short": False,
            })

        payload = {
            "text": f"🚨 Alert: {alert.test_name}",
            "attachments": [
                {
                    "color": color,
                    "title": f"{alert.test_name} - {alert.reason.upper()}",
                    "text": alert.message,
                    "fields": fields,
                    "footer": "Synthetic Test Monitor",
                    "ts": int(alert.timestamp.timestamp()),
                }
            ],
        }

        if self.channel:
            payload["channel"] = self.channel

        return payload

    def _send_webhook(self, payload: dict) -> bool:
        """Send payload to Slack webhook."""
        try:
            response = httpx.post(
                self.webhook_url,
                json=payload,
                timeout=10,
            )

            if response.status_code == 200:
                logger.info("Slack notification sent")
                return True
            else:
                logger.error(f"Slack webhook error: {response.status_code}")
                return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return False
