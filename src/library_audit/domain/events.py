"""Wire model for audit events published on the bus."""

from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from library_audit.errors import AuditEventDecodeError, AuditEventValidationError


class EventType(StrEnum):
    """Kind of entity change carried by an audit event."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


class AuditEvent(BaseModel):
    """One entity change, as published by a business service.

    Serialized as JSON with camelCase keys. ``old_value``, ``new_value``,
    ``user_info`` and ``changes`` are opaque strings owned by the producing
    service and are carried through untouched.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    event_id: str = Field(default_factory=lambda: uuid4().hex, min_length=1)
    event_type: EventType
    service_name: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    user_id: str | None = None
    user_info: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    changes: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    request_id: str | None = None

    @classmethod
    def from_json(cls, payload: bytes | str) -> "AuditEvent":
        """Parse a bus payload, raising ``AuditEventDecodeError`` on bad input."""
        try:
            return cls.model_validate_json(payload)
        except ValidationError as exc:
            raise AuditEventDecodeError(
                f"Invalid audit event payload: {exc.error_count()} error(s)"
            ) from exc

    def to_json(self) -> str:
        """Serialize with camelCase keys and explicit nulls."""
        return self.model_dump_json(by_alias=True)

    def validation_errors(self) -> list[str]:
        """Return the value-presence rules this event breaks, if any."""
        problems = []
        if self.event_type in {EventType.CREATED, EventType.UPDATED}:
            if self.new_value is None:
                problems.append(f"{self.event_type} event requires newValue")
        if self.event_type in {EventType.UPDATED, EventType.DELETED}:
            if self.old_value is None:
                problems.append(f"{self.event_type} event requires oldValue")
        return problems

    def ensure_valid(self) -> None:
        """Raise ``AuditEventValidationError`` if the event is inconsistent."""
        problems = self.validation_errors()
        if problems:
            raise AuditEventValidationError(problems)
