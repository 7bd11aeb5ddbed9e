"""Consumer that persists audit events from the bus."""

import logging
import threading
from collections import Counter
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum

from library_audit.domain.events import AuditEvent
from library_audit.domain.messages import BusMessage
from library_audit.errors import AuditEventDecodeError, AuditEventValidationError
from library_audit.services.audit_logs import AuditLogWriter
from library_audit.services.bus import MessageBus

_logger = logging.getLogger(__name__)


class MessageState(StrEnum):
    """Processing states of a consumed message."""

    RECEIVED = "RECEIVED"
    DESERIALIZED = "DESERIALIZED"
    VALIDATED = "VALIDATED"
    PERSISTED = "PERSISTED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DEAD_LETTERED = "DEAD_LETTERED"
    ERROR = "ERROR"


@dataclass
class AuditEventConsumer:
    """Reads audit topics as one consumer group and stores each event.

    A message is acknowledged only after it is persisted or dead-lettered.
    Messages of one partition lane are handled in order; separate lanes run
    concurrently on a worker pool.
    """

    bus: MessageBus
    writer: AuditLogWriter
    topics: list[str]
    group: str
    consumer_name: str
    batch_size: int = 100
    block_ms: int = 2000
    worker_count: int = 4
    retry_backoff_seconds: float = 1.0
    _stop: threading.Event = field(init=False, default_factory=threading.Event)
    _subscribed: bool = field(init=False, default=False)

    def subscribe(self) -> None:
        """Join the consumer group on every configured topic."""
        if self._subscribed:
            return
        self.bus.subscribe(self.topics, self.group, self.consumer_name)
        self._subscribed = True
        _logger.info(
            "Subscribed to audit topics: group=%s consumer=%s topics=%s",
            self.group,
            self.consumer_name,
            ",".join(self.topics),
        )

    def handle(self, message: BusMessage) -> MessageState:
        """Process one message and return the state it ended in."""
        try:
            event = AuditEvent.from_json(message.payload)
        except AuditEventDecodeError as exc:
            return self._dead_letter(message, exc.message)
        try:
            event.ensure_valid()
        except AuditEventValidationError as exc:
            return self._dead_letter(message, exc.message)
        try:
            self.writer.record(event)
        except Exception:
            _logger.exception(
                "Failed to persist audit event: message_id=%s event_id=%s",
                message.message_id,
                event.event_id,
            )
            return MessageState.ERROR
        try:
            self.bus.ack(message)
        except Exception:
            _logger.exception(
                "Failed to acknowledge audit event: message_id=%s", message.message_id
            )
            return MessageState.PERSISTED
        return MessageState.ACKNOWLEDGED

    def process_lane(self, messages: list[BusMessage]) -> list[MessageState]:
        """Handle one lane's messages in order, stopping at the first error."""
        states = []
        for message in messages:
            state = self.handle(message)
            states.append(state)
            if state in {MessageState.ERROR, MessageState.PERSISTED}:
                break
        return states

    def poll_once(self, executor: Executor | None = None) -> Counter[MessageState]:
        """Fetch one batch and process it, one task per lane."""
        self.subscribe()
        messages = self.bus.poll(self.batch_size, self.block_ms)
        lanes: dict[tuple[str, int], list[BusMessage]] = {}
        for message in messages:
            lanes.setdefault(message.lane, []).append(message)
        counts: Counter[MessageState] = Counter()
        if executor is None:
            for lane_messages in lanes.values():
                counts.update(self.process_lane(lane_messages))
            return counts
        futures = [
            executor.submit(self.process_lane, lane_messages)
            for lane_messages in lanes.values()
        ]
        for future in futures:
            counts.update(future.result())
        return counts

    def run(self, stop_event: threading.Event | None = None) -> None:
        """Consume until stopped; in-flight lanes finish before returning."""
        if stop_event is not None:
            self._stop = stop_event
        stop = self._stop
        with ThreadPoolExecutor(
            max_workers=self.worker_count, thread_name_prefix="audit-consumer"
        ) as executor:
            while not stop.is_set():
                try:
                    counts = self.poll_once(executor)
                except Exception:
                    _logger.exception(
                        "Audit consumer poll failed: consumer=%s", self.consumer_name
                    )
                    stop.wait(self.retry_backoff_seconds)
                    continue
                unfinished = counts[MessageState.ERROR] + counts[MessageState.PERSISTED]
                if unfinished:
                    _logger.warning(
                        "Audit events left unacknowledged: count=%s", unfinished
                    )
                    stop.wait(self.retry_backoff_seconds)
        _logger.info("Audit consumer stopped: consumer=%s", self.consumer_name)

    def stop(self) -> None:
        """Stop fetching new batches."""
        self._stop.set()

    def _dead_letter(self, message: BusMessage, reason: str) -> MessageState:
        _logger.warning(
            "Dead-lettering audit message: topic=%s message_id=%s reason=%s",
            message.topic,
            message.message_id,
            reason,
        )
        try:
            self.bus.dead_letter(message, reason)
            self.bus.ack(message)
        except Exception:
            _logger.exception(
                "Failed to dead-letter audit message: message_id=%s",
                message.message_id,
            )
            return MessageState.ERROR
        return MessageState.DEAD_LETTERED
