"""Audit logging service used by business operations."""

import dataclasses
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import BaseModel

from library_audit.domain.events import AuditEvent, EventType
from library_audit.services.publisher import EventPublisher

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditContext:
    """Request-scoped details about who triggered a change."""

    user_info: str | None = None
    request_id: str | None = None
    changes: str | None = None


@dataclass
class AuditService:
    """Builds audit events at create/update/delete boundaries.

    Publishing is best effort: failures are logged and never raised back into
    the business operation.
    """

    publisher: EventPublisher
    service_name: str

    def publish_create(
        self,
        entity_type: str,
        entity_id: object,
        new_value: object,
        user_id: str | None,
        context: AuditContext | None = None,
    ) -> AuditEvent | None:
        """Record that an entity was created."""
        return self.publish(
            EventType.CREATED, entity_type, entity_id, None, new_value, user_id, context
        )

    def publish_update(  # noqa: PLR0913
        self,
        entity_type: str,
        entity_id: object,
        old_value: object,
        new_value: object,
        user_id: str | None,
        context: AuditContext | None = None,
    ) -> AuditEvent | None:
        """Record that an entity was updated."""
        return self.publish(
            EventType.UPDATED,
            entity_type,
            entity_id,
            old_value,
            new_value,
            user_id,
            context,
        )

    def publish_delete(
        self,
        entity_type: str,
        entity_id: object,
        old_value: object,
        user_id: str | None,
        context: AuditContext | None = None,
    ) -> AuditEvent | None:
        """Record that an entity was deleted."""
        return self.publish(
            EventType.DELETED, entity_type, entity_id, old_value, None, user_id, context
        )

    def publish(  # noqa: PLR0913
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: object,
        old_value: object,
        new_value: object,
        user_id: str | None,
        context: AuditContext | None = None,
    ) -> AuditEvent | None:
        """Build and publish an audit event; return it, or None on failure."""
        try:
            event = self.build_event(
                event_type, entity_type, entity_id, old_value, new_value, user_id, context
            )
            self.publisher.publish(event)
        except Exception:
            _logger.exception(
                "Failed to publish %s event for %s with id %s",
                event_type,
                entity_type,
                entity_id,
            )
            return None
        return event

    def build_event(  # noqa: PLR0913
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: object,
        old_value: object,
        new_value: object,
        user_id: str | None,
        context: AuditContext | None = None,
    ) -> AuditEvent:
        """Build an audit event without publishing it."""
        context = context or AuditContext()
        changes = context.changes
        if changes is None and event_type == EventType.UPDATED:
            changes = diff_snapshots(old_value, new_value)
        return AuditEvent(
            event_type=event_type,
            service_name=self.service_name,
            entity_type=entity_type,
            entity_id=str(entity_id),
            user_id=user_id,
            user_info=context.user_info,
            old_value=serialize_value(old_value),
            new_value=serialize_value(new_value),
            changes=changes,
            request_id=context.request_id,
        )


def serialize_value(value: object) -> str | None:
    """Serialize an entity snapshot to a stable JSON string."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return _dumps(_to_plain(value))


def diff_snapshots(old_value: object, new_value: object) -> str | None:
    """Describe changed fields between two mapping snapshots as JSON."""
    old_plain = _to_plain(old_value)
    new_plain = _to_plain(new_value)
    if not isinstance(old_plain, Mapping) or not isinstance(new_plain, Mapping):
        return None
    changed = {
        key: {"old": old_plain.get(key), "new": new_plain.get(key)}
        for key in sorted(set(old_plain) | set(new_plain), key=str)
        if old_plain.get(key) != new_plain.get(key)
    }
    return _dumps(changed)


def _to_plain(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _dumps(value: object) -> str:
    try:
        return json.dumps(value, default=str, sort_keys=True)
    except TypeError:
        # Mixed key types cannot be sorted; JSON keys are strings anyway.
        return json.dumps(_string_keys(value), default=str, sort_keys=True)


def _string_keys(value: object) -> object:
    if isinstance(value, Mapping):
        return {str(key): _string_keys(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_string_keys(item) for item in value]
    return value
