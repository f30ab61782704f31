"""Generic webhook notification handler."""

import logging

import httpx

from synthetic_monitor.models import Alert
from synthetic_monitor.notifiers.base import BaseNotifier

logger = logging.getLogger(__name__)


class WebhookNotifier(BaseNotifier):
    """Send alerts via generic HTTP webhook."""

    def __init__(
        self,
        url: str,
        method: str = "POST",
        headers: dict | None = None,
        auth: tuple[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize webhook notifier.

        Args:
            url: Webhook URL.
            method: HTTP method (default POST).
            headers: Optional headers to include.
            auth: Optional (username, password) tuple for basic auth.
            client: Optional preconfigured HTTP client.
        """
        self.url = url
        self.method = method.upper()
        self.headers = headers or {}
        self.auth = auth
        self._client = client or httpx.Client()

    def send_alert(self, alert: Alert) -> bool:
        """Send alert via webhook."""
        payload = {
            "event": "alert",
            "reason": alert.reason,
            "message": alert.message,
            "alert": alert.to_dict(),
        }
        return self._send_request(payload)

    def _send_request(self, payload: dict) -> bool:
        """Send HTTP request to webhook."""
        try:
            auth = httpx.BasicAuth(*self.auth) if self.auth else None

            response = self._client.request(
                method=self.method,
                url=self.url,
                json=payload,
                headers=self.headers,
                auth=auth,
                timeout=10,
            )

            if response.status_code in (200, 201, 202, 204):
                logger.info(f"Webhook notification sent to {self.url}")
                return True
            else:
                logger.error(f"Webhook error: {response.status_code}")
                return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook notification: {e}")
            return False
