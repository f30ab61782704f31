"""Base notifier interface."""

from abc import ABC, abstractmethod

from synthetic_monitor.config import NotifierConfig
from synthetic_monitor.models import Alert


class BaseNotifier(ABC):
    """Abstract base class for alert notifiers."""

    @abstractmethod
    def send_alert(self, alert: Alert) -> bool:
        """Send an alert notification.

        Args:
            alert: Slow or failed outcome to report.

        Returns:
            True if notification was sent successfully.
        """
        ...

    def format_alert(self, alert: Alert) -> str:
        """Format an alert message with context.

        Override this method to customize message formatting.
        """
        emoji = "❌" if alert.reason == "failed" else "⚠️"
        node = alert.node_name or f"node {alert.node_id}"

        lines = [
            f"{emoji} **{alert.test_name}** on {node} - {alert.message}",
            "",
            f"  • API: {alert.api_method or '?'} {alert.api_uri or '?'}",
            f"  • Response time: {alert.response_time_ms} ms (threshold {alert.threshold_ms} ms)",
            f"  • Status code: {alert.status_code}",
            f"  • At: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
        ]

        if alert.parameter_values:
            lines.append("")
            lines.append("🔧 **Parameters:**")
            for name, value in alert.parameter_values.items():
                lines.append(f"  • {name}: {value}")

        return "\n".join(lines)


def build_notifiers(config: NotifierConfig) -> list[BaseNotifier]:
    """Create the notifiers enabled in configuration."""
    from synthetic_monitor.notifiers.slack import SlackNotifier
    from synthetic_monitor.notifiers.webhook import WebhookNotifier

    notifiers: list[BaseNotifier] = []
    if config.slack and config.slack.get("webhook_url"):
        notifiers.append(SlackNotifier(
            webhook_url=config.slack["webhook_url"],
            channel=config.slack.get("channel"),
        ))
    if config.webhook and config.webhook.get("url"):
        auth = config.webhook.get("auth")
        notifiers.append(WebhookNotifier(
            url=config.webhook["url"],
            method=config.webhook.get("method", "POST"),
            headers=config.webhook.get("headers"),
            auth=(auth["username"], auth["password"]) if auth else None,
        ))
    return notifiers
