"""Redis Streams implementation of the audit message bus."""

import logging
import math
import time
from dataclasses import dataclass, field

from redis import Redis
from redis.exceptions import ResponseError

from library_audit.domain.messages import BusMessage
from library_audit.services.bus import MessageBus, partition_for

_logger = logging.getLogger(__name__)

DEAD_LETTER_SUFFIX = "-dlq"


def stream_key(topic: str, partition: int) -> str:
    """Return the Redis stream backing one partition of a topic."""
    return f"{topic}:{partition}"


def lease_key(stream: str, group: str) -> str:
    """Return the key naming the group member that owns a stream."""
    return f"{stream}:{group}:owner"


def members_key(group: str) -> str:
    """Return the sorted set of live group members, scored by heartbeat."""
    return f"{group}:members"


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


@dataclass
class RedisStreamBus(MessageBus):
    """Topics split into ``partitions`` streams, consumed via XREADGROUP.

    Every partition stream is read by exactly one group member at a time:
    a member reads only streams whose lease key it holds. Leases last
    ``lease_ms`` and are renewed on each poll; live members split the streams
    evenly. A member that takes over a stream first claims every entry still
    pending there, and pending entries are re-read before new ones, so a
    message left unacknowledged is retried ahead of later messages in the
    same stream.
    """

    client: Redis
    partitions: int = 8
    max_length: int | None = None
    lease_ms: int = 30_000
    _group: str | None = field(init=False, default=None)
    _consumer: str | None = field(init=False, default=None)
    _lanes: dict[str, tuple[str, int]] = field(init=False, default_factory=dict)

    @classmethod
    def create(
        cls,
        redis_url: str,
        partitions: int = 8,
        max_length: int | None = None,
        lease_ms: int = 30_000,
    ) -> "RedisStreamBus":
        """Create a bus with its own Redis connection pool."""
        return cls(
            client=Redis.from_url(redis_url),
            partitions=partitions,
            max_length=max_length,
            lease_ms=lease_ms,
        )

    def send(self, topic: str, key: str, payload: bytes) -> str:
        """XADD the payload to the key's partition stream."""
        partition = partition_for(key, self.partitions)
        message_id = self.client.xadd(
            stream_key(topic, partition),
            {"key": key, "payload": payload},
            maxlen=self.max_length,
            approximate=True,
        )
        return _text(message_id)

    def subscribe(self, topics: list[str], group: str, consumer: str) -> None:
        """Create the consumer group on every partition stream if missing."""
        self._group = group
        self._consumer = consumer
        self._lanes = {}
        for topic in topics:
            for partition in range(self.partitions):
                key = stream_key(topic, partition)
                self._lanes[key] = (topic, partition)
                try:
                    self.client.xgroup_create(key, group, id="0", mkstream=True)
                except ResponseError as exc:
                    if "BUSYGROUP" not in str(exc):
                        raise

    def poll(self, max_messages: int, block_ms: int) -> list[BusMessage]:
        """Return up to ``max_messages`` per owned stream, pending entries first."""
        group, consumer = self._membership()
        owned = self._refresh_leases(group, consumer, max_messages)
        if not owned:
            if block_ms > 0:
                time.sleep(block_ms / 1000)
            return []
        pending = self._read(
            group, consumer, {key: "0" for key in owned}, max_messages, None
        )
        busy = {stream_key(m.topic, m.partition) for m in pending}
        idle = {key: ">" for key in owned if key not in busy}
        if not idle:
            return pending
        # BLOCK 0 waits forever in Redis, so a zero budget reads without blocking.
        block = block_ms if block_ms > 0 and not pending else None
        fresh = self._read(group, consumer, idle, max_messages, block)
        return pending + fresh

    def ack(self, message: BusMessage) -> None:
        """XACK the message in its partition stream."""
        group, _ = self._membership()
        self.client.xack(
            stream_key(message.topic, message.partition), group, message.message_id
        )

    def dead_letter(self, message: BusMessage, reason: str) -> None:
        """Copy the raw message to ``<topic>-dlq`` with the failure reason."""
        self.client.xadd(
            f"{message.topic}{DEAD_LETTER_SUFFIX}",
            {
                "key": message.key or "",
                "payload": message.payload,
                "reason": reason,
                "source_stream": stream_key(message.topic, message.partition),
                "source_id": message.message_id,
            },
            maxlen=self.max_length,
            approximate=True,
        )

    def release(self) -> None:
        """Give up every stream lease and leave the member set."""
        if self._group is None or self._consumer is None:
            return
        for key in self._lanes:
            lease = lease_key(key, self._group)
            if self._holds(lease, self._consumer):
                self.client.delete(lease)
        self.client.zrem(members_key(self._group), self._consumer)

    def close(self) -> None:
        """Release leases and close the connection pool."""
        try:
            self.release()
        finally:
            self.client.close()

    def _membership(self) -> tuple[str, str]:
        if self._group is None or self._consumer is None:
            raise RuntimeError("Bus is not subscribed to any topics")
        return self._group, self._consumer

    def _holds(self, lease: str, consumer: str) -> bool:
        holder = self.client.get(lease)
        return holder is not None and _text(holder) == consumer

    def _refresh_leases(self, group: str, consumer: str, count: int) -> list[str]:
        now = time.time()
        members = members_key(group)
        self.client.zadd(members, {consumer: now})
        self.client.zremrangebyscore(members, "-inf", now - self.lease_ms / 1000)
        quota = math.ceil(len(self._lanes) / max(1, self.client.zcard(members)))

        owned: list[str] = []
        for key in self._lanes:
            lease = lease_key(key, group)
            if not self._holds(lease, consumer):
                continue
            if len(owned) < quota:
                self.client.pexpire(lease, self.lease_ms)
                owned.append(key)
            else:
                self.client.delete(lease)
                _logger.info("Released audit stream lease: stream=%s", key)
        for key in self._lanes:
            if len(owned) >= quota:
                break
            if key in owned:
                continue
            acquired = self.client.set(
                lease_key(key, group), consumer, nx=True, px=self.lease_ms
            )
            if acquired:
                self._take_over(key, group, consumer, count)
                owned.append(key)
        return owned

    def _take_over(self, key: str, group: str, consumer: str, count: int) -> None:
        """Claim every entry another member left pending in a newly owned stream."""
        start = "0-0"
        claimed = 0
        while True:
            response = self.client.xautoclaim(
                key, group, consumer, 0, start_id=start, count=count, justid=True
            )
            claimed += len(response[1]) if len(response) > 1 else 0
            start = _text(response[0])
            if start == "0-0":
                break
        _logger.info(
            "Acquired audit stream lease: stream=%s consumer=%s claimed=%s",
            key,
            consumer,
            claimed,
        )

    def _read(
        self,
        group: str,
        consumer: str,
        streams: dict[str, str],
        count: int,
        block_ms: int | None,
    ) -> list[BusMessage]:
        response = self.client.xreadgroup(
            group, consumer, streams, count=count, block=block_ms
        )
        messages = []
        for raw_stream, entries in response or []:
            key = _text(raw_stream)
            topic, partition = self._lanes[key]
            for raw_id, fields in entries:
                message_id = _text(raw_id)
                if not fields:
                    # Entry was trimmed from the stream while pending.
                    self.client.xack(key, group, message_id)
                    continue
                raw_key = fields.get(b"key", fields.get("key"))
                payload = fields.get(b"payload", fields.get("payload", b""))
                messages.append(
                    BusMessage(
                        topic=topic,
                        partition=partition,
                        message_id=message_id,
                        key=_text(raw_key) if raw_key is not None else None,
                        payload=payload.encode("utf-8")
                        if isinstance(payload, str)
                        else payload,
                    )
                )
        return messages
