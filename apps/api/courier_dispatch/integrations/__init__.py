"""Outbound gateways used by the dispatch service."""

from courier_dispatch.integrations.errors import IntegrationError, error_for_status
from courier_dispatch.integrations.notification_client import (
    NotificationSink,
    get_notification_sink,
    notify_best_effort,
)

__all__ = [
    "IntegrationError",
    "NotificationSink",
    "error_for_status",
    "get_notification_sink",
    "notify_best_effort",
]
