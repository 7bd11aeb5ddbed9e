"""Domain models for messages delivered by the bus."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BusMessage:
    """A message read from one partition lane of a topic."""

    topic: str
    partition: int
    message_id: str
    key: str | None
    payload: bytes

    @property
    def lane(self) -> tuple[str, int]:
        """Ordered processing lane the message belongs to."""
        return (self.topic, self.partition)
