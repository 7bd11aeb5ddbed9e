"""Message bus interface shared by the publisher and consumer."""

import zlib
from typing import Protocol

from library_audit.domain.messages import BusMessage


def partition_for(key: str, partitions: int) -> int:
    """Return the stable partition for a key."""
    return zlib.crc32(key.encode("utf-8")) % partitions


class MessageBus(Protocol):
    """Keyed, partitioned topics with consumer-group acknowledgment."""

    def send(self, topic: str, key: str, payload: bytes) -> str:
        """Append a message to the key's partition and return its id."""

    def subscribe(self, topics: list[str], group: str, consumer: str) -> None:
        """Join a consumer group on the given topics."""

    def poll(self, max_messages: int, block_ms: int) -> list[BusMessage]:
        """Return messages to process, redeliveries first, in lane order."""

    def ack(self, message: BusMessage) -> None:
        """Acknowledge a fully processed message."""

    def dead_letter(self, message: BusMessage, reason: str) -> None:
        """Park an unprocessable message on the topic's dead-letter stream."""
