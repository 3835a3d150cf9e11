"""Best-effort digest announcements."""

from recap.notify.webhook import WebhookNotifier

__all__ = ["WebhookNotifier"]
