import time
from typing import Any, Protocol

import httpx
from fastapi.encoders import jsonable_encoder

from courier_dispatch.config import settings
from courier_dispatch.integrations.errors import (
    IntegrationError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
    error_for_status,
)
from courier_dispatch.observability import log_event, log_failure, metrics_store

_SERVICE = "notifications"


class NotificationSink(Protocol):
    def notify(self, courier_id: str, title: str, body: str, data: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Used when no push gateway is configured."""

    def notify(self, courier_id: str, title: str, body: str, data: dict[str, Any]) -> None:
        log_event(f"notification:{title}", courier_id=courier_id, order_id=data.get("orderId"))


class HttpNotificationSink:
    def __init__(
        self,
        webhook_url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def notify(self, courier_id: str, title: str, body: str, data: dict[str, Any]) -> None:
        payload = jsonable_encoder(
            {"courier_id": courier_id, "title": title, "body": body, "data": data}
        )
        for attempt in range(self.max_retries + 1):
            try:
                with httpx.Client(timeout=httpx.Timeout(self.timeout_s)) as client:
                    response = client.post(self.webhook_url, json=payload)

                failure = error_for_status(_SERVICE, response.status_code)
                if failure is None:
                    return
                if not failure.retryable:
                    raise failure
                integration_error = failure
            except httpx.TimeoutException:
                integration_error = IntegrationTimeoutError(_SERVICE)
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError(_SERVICE, str(err))

            if attempt >= self.max_retries:
                raise integration_error

            time.sleep(self.backoff_s * (2**attempt))


def notify_best_effort(
    sink: NotificationSink,
    courier_id: str,
    title: str,
    body: str,
    data: dict[str, Any],
) -> bool:
    """Fire-and-forget delivery; failures are logged and reported as False."""
    try:
        sink.notify(courier_id, title, body, data)
    except IntegrationError:
        metrics_store.increment("notification_failed_total")
        log_failure("notification_failed", courier_id=courier_id, order_id=data.get("orderId"))
        return False
    metrics_store.increment("notification_sent_total")
    return True


def get_notification_sink() -> NotificationSink:
    if not settings.notification_webhook_url:
        return LoggingNotificationSink()
    return HttpNotificationSink(
        settings.notification_webhook_url,
        timeout_s=settings.notification_timeout_s,
        max_retries=settings.notification_max_retries,
        backoff_s=settings.notification_backoff_s,
    )
