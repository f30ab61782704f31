"""Alert notification handlers."""

from synthetic_monitor.notifiers.base import BaseNotifier, build_notifiers
from synthetic_monitor.notifiers.slack import SlackNotifier
from synthetic_monitor.notifiers.webhook import WebhookNotifier

__all__ = ["BaseNotifier", "SlackNotifier", "WebhookNotifier", "build_notifiers"]
