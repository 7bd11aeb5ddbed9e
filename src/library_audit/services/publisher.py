"""Audit event publisher."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from library_audit.domain.events import AuditEvent
from library_audit.errors import PublisherClosedError
from library_audit.services.bus import MessageBus

_logger = logging.getLogger(__name__)


@dataclass
class EventPublisher:
    """Hands audit events to the bus keyed by entity id.

    Sends run on a single background thread so callers only enqueue, and
    events are delivered in submission order.
    """

    bus: MessageBus
    default_topic: str
    _executor: ThreadPoolExecutor = field(init=False, repr=False)
    _pending: set[Future[str]] = field(init=False, repr=False)
    _lock: threading.Lock = field(init=False, repr=False)
    _closed: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="audit-publisher"
        )
        self._pending = set()
        self._lock = threading.Lock()

    def publish(self, event: AuditEvent, topic: str | None = None) -> Future[str]:
        """Enqueue an event for delivery to ``topic`` or the default topic."""
        target = topic or self.default_topic
        payload = event.to_json().encode("utf-8")
        _logger.debug(
            "Publishing audit event: topic=%s event_id=%s", target, event.event_id
        )
        with self._lock:
            if self._closed:
                raise PublisherClosedError("Publisher is closed")
            future = self._executor.submit(
                self._deliver, target, event.entity_id, payload, event.event_id
            )
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def publish_to(self, topic: str, event: AuditEvent) -> Future[str]:
        """Enqueue an event for delivery to an explicit topic."""
        return self.publish(event, topic=topic)

    def flush(self, timeout: float | None = None) -> int:
        """Wait for queued sends; return how many are still pending."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return len(not_done)

    def close(self, timeout: float | None = None) -> None:
        """Stop accepting events and drain the queue."""
        with self._lock:
            self._closed = True
        self.flush(timeout)
        self._executor.shutdown(wait=True)

    def _deliver(self, topic: str, key: str, payload: bytes, event_id: str) -> str:
        try:
            message_id = self.bus.send(topic, key, payload)
        except Exception as exc:
            _logger.error(
                "Failed to publish audit event: topic=%s event_id=%s error=%s",
                topic,
                event_id,
                exc,
            )
            raise
        _logger.debug(
            "Published audit event: topic=%s event_id=%s message_id=%s",
            topic,
            event_id,
            message_id,
        )
        return message_id

    def _forget(self, future: Future[str]) -> None:
        with self._lock:
            self._pending.discard(future)
