"""Notification sinks for limit-exceeded events."""

from limitr.adapters.notify.webhook import WebhookNotifier

__all__ = ["WebhookNotifier"]
