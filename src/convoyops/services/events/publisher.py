"""Publishers deliver notification messages to whoever owns the client connections."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Protocol

import httpx

from ...config import settings
from .messages import Message

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, message: Message) -> None:
        ...


class LoggingPublisher:
    """Default publisher: records every message in the service log."""

    def publish(self, message: Message) -> None:
        logger.info(f"[{message.name}] {message.to_payload()['data']}")


class WebhookPublisher:
    """POSTs each message as JSON to a webhook, retrying with backoff.

    Delivery failures are logged and dropped; publishing never fails the
    operation that produced the message.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url or settings.event_webhook_url
        if not self.url:
            raise ValueError("Event webhook URL is not configured.")
        self.timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.webhook_backoff_seconds
        self._client = client

    def _get_client(self) -> httpx.Client:
        return self._client or httpx.Client(timeout=httpx.Timeout(self.timeout, connect=5.0))

    def publish(self, message: Message) -> None:
        payload = message.to_payload()
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(self.url, json=payload)
                    response.raise_for_status()
                    return
                except (httpx.HTTPStatusError, httpx.TransportError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"Dropping {message.name} after {attempt} delivery attempts: {exc}")
                        return
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Webhook delivery failed, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
        finally:
            if self._client is None:
                client.close()


class BackgroundPublisher:
    """Hands messages to a worker thread so callers never wait on delivery.

    The queue is bounded; when it is full new messages are dropped with a
    warning. ``close`` drains what is queued and joins the worker.
    """

    _STOP = object()

    def __init__(self, delegate: Publisher, *, queue_size: int | None = None) -> None:
        self.delegate = delegate
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size or settings.publish_queue_size)
        self._closed = False
        self._worker = threading.Thread(target=self._drain, name="notification-publisher", daemon=True)
        self._worker.start()

    def publish(self, message: Message) -> None:
        if self._closed:
            logger.warning(f"Publisher closed; dropping {message.name}")
            return
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.warning(f"Notification queue full; dropping {message.name}")

    def _drain(self) -> None:
        while True:
            message = self._queue.get()
            try:
                if message is self._STOP:
                    return
                self.delegate.publish(message)
            except Exception:
                logger.exception(f"Unexpected failure delivering {message.name}")
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued message has been handed to the delegate."""
        self._queue.join()

    def close(self, timeout: float | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(self._STOP)
        self._worker.join(timeout)


def build_publisher() -> Publisher:
    if settings.event_webhook_url:
        return BackgroundPublisher(WebhookPublisher())
    return LoggingPublisher()
