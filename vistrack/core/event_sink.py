"""Event sinks: where emitted visibility events are delivered.

Every sink implements ``EventSink.emit`` and reports delivery by return
value rather than by raising, so a failing analytics backend never
interrupts the sampling loop.

``HttpEventSink`` never touches the network from ``emit``.  Events are
queued and posted by ``flush``, which the owning session calls outside
its per-sample ``tick``.  Posting follows a retry / back-off policy:
transport errors and 5xx responses are retried with exponential
back-off, 4xx responses are not.

Dependencies: ``models.events``, ``config.settings``, ``httpx``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable

import httpx

from vistrack.config.settings import Settings
from vistrack.models.events import EVENT_NAME, VisibilityEvent

logger = logging.getLogger(__name__)

# Upper bound for the TCP connect phase of each request.
_MAX_CONNECT_TIMEOUT_SECONDS = 5.0


class EventSink(ABC):
    """Destination for emitted visibility events."""

    @abstractmethod
    def emit(self, event: VisibilityEvent) -> bool:
        """Deliver or accept one event.

        Args:
            event: The event to deliver.

        Returns:
            True if the event was accepted.
        """

    def flush(self) -> int:
        """Deliver anything buffered by ``emit``.

        Returns:
            Number of events delivered by this call.
        """
        return 0

    def close(self) -> None:
        """Flush and release any resources held by the sink."""
        self.flush()


class MemorySink(EventSink):
    """Collects events in a list.  Useful for tests and offline replay."""

    def __init__(self) -> None:
        self.events: list[VisibilityEvent] = []

    def emit(self, event: VisibilityEvent) -> bool:
        self.events.append(event)
        return True


class CallbackSink(EventSink):
    """Forwards each event to a plain callable.

    Exceptions raised by the callback are logged and reported as a
    failed delivery.
    """

    def __init__(self, callback: Callable[[VisibilityEvent], None]) -> None:
        self._callback = callback

    def emit(self, event: VisibilityEvent) -> bool:
        try:
            self._callback(event)
        except Exception:
            logger.exception(
                "CallbackSink: callback failed for %s event on %s",
                event.direction.value,
                event.element_id,
            )
            return False
        return True


class HttpEventSink(EventSink):
    """Posts events as JSON to an analytics endpoint.

    ``emit`` only queues; ``flush`` performs the requests.  Each event
    is sent as::

        {"event": "onVisibilityStateChange",
         "payload": {"id": ..., "direction": ..., "percentage": ...}}

    Args:
        endpoint: Absolute URL to POST to.
        settings: Provides timeout, retry count and back-off base.
        headers: Extra HTTP headers sent with each request.
        sleep: Sleep function used between retries (seconds).
    """

    def __init__(
        self,
        endpoint: str,
        settings: Settings,
        headers: dict[str, str] | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not endpoint:
            raise ValueError("HttpEventSink requires a non-empty endpoint")
        self._endpoint = endpoint
        self._settings = settings
        self._sleep = sleep
        self._headers: dict[str, str] = {"content-type": "application/json"}
        if headers:
            self._headers.update(headers)
        self._pending: deque[VisibilityEvent] = deque()
        self._sent: int = 0
        self._failed: int = 0

    @property
    def endpoint(self) -> str:
        """The URL events are posted to."""
        return self._endpoint

    @property
    def pending_count(self) -> int:
        """Number of queued events awaiting ``flush``."""
        return len(self._pending)

    @property
    def sent_count(self) -> int:
        """Number of events delivered successfully."""
        return self._sent

    @property
    def failed_count(self) -> int:
        """Number of events dropped after exhausting retries."""
        return self._failed

    @staticmethod
    def build_payload(event: VisibilityEvent) -> dict:
        """Wrap an event in the analytics request body."""
        return {"event": EVENT_NAME, "payload": event.to_dict()}

    def emit(self, event: VisibilityEvent) -> bool:
        """Queue *event* for the next ``flush``.  Never blocks."""
        self._pending.append(event)
        return True

    def flush(self) -> int:
        """Post every queued event in order.

        Returns:
            Number of events delivered.  Events that fail after retries
            are dropped and counted in ``failed_count``.
        """
        delivered = 0
        while self._pending:
            if self._post(self._pending.popleft()):
                delivered += 1
        return delivered

    def _post(self, event: VisibilityEvent) -> bool:
        """Post *event*, retrying transient failures.

        Returns:
            True on a 2xx response, False once retries are exhausted or
            the server rejects the request with a 4xx status.
        """
        payload = self.build_payload(event)
        timeout_s = self._settings.sink_timeout_seconds
        timeout = httpx.Timeout(
            timeout_s, connect=min(_MAX_CONNECT_TIMEOUT_SECONDS, timeout_s)
        )
        retries = self._settings.sink_max_retries
        last_error = ""

        for attempt in range(retries):
            try:
                with httpx.Client(timeout=timeout) as client:
                    http_resp = client.post(
                        self._endpoint,
                        headers=self._headers,
                        json=payload,
                    )

                if 200 <= http_resp.status_code < 300:
                    self._sent += 1
                    return True

                last_error = f"HTTP {http_resp.status_code}: {http_resp.text[:200]}"
                logger.warning(
                    "HttpEventSink: attempt %d/%d failed: %s",
                    attempt + 1,
                    retries,
                    last_error,
                )

                # Only retry on transient server errors.
                if http_resp.status_code < 500:
                    break

            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "HttpEventSink: attempt %d/%d error: %s",
                    attempt + 1,
                    retries,
                    last_error,
                )

            if attempt < retries - 1:
                delay = self._settings.sink_backoff_base_seconds * (2**attempt)
                self._sleep(delay)

        self._failed += 1
        logger.error(
            "HttpEventSink: dropping %s event for %s: %s",
            event.direction.value,
            event.element_id,
            last_error,
        )
        return False
