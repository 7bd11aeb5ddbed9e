"""Domain models for persisted audit logs."""

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from pydantic.alias_generators import to_camel

from library_audit.domain.events import AuditEvent, EventType
from library_audit.errors import InvalidPageRequestError

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
DEFAULT_SORT_BY = "timestamp"
DEFAULT_SORT_DIR = "desc"
SORTABLE_FIELDS = frozenset(
    {
        "timestamp",
        "created_at",
        "service_name",
        "entity_name",
        "entity_id",
        "action_type",
        "user_id",
    }
)
SORT_ALIASES = {to_camel(column): column for column in SORTABLE_FIELDS}


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class ActionType(StrEnum):
    """Action recorded on a persisted audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @classmethod
    def from_event_type(cls, event_type: EventType) -> "ActionType":
        """Map a wire event type to the stored action type."""
        return _ACTION_BY_EVENT[event_type]


_ACTION_BY_EVENT = {
    EventType.CREATED: ActionType.CREATE,
    EventType.UPDATED: ActionType.UPDATE,
    EventType.DELETED: ActionType.DELETE,
}


@dataclass(frozen=True)
class AuditLogDraft:
    """Audit log contents before the store assigns an id."""

    event_id: str
    service_name: str
    entity_name: str
    entity_id: str
    action_type: ActionType
    user_id: str | None
    user_info: str | None
    old_value: str | None
    new_value: str | None
    changes: str | None
    request_id: str | None
    timestamp: datetime

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditLogDraft":
        """Carry an audit event's fields through to its stored form."""
        return cls(
            event_id=event.event_id,
            service_name=event.service_name,
            entity_name=event.entity_type,
            entity_id=event.entity_id,
            action_type=ActionType.from_event_type(event.event_type),
            user_id=event.user_id,
            user_info=event.user_info,
            old_value=event.old_value,
            new_value=event.new_value,
            changes=event.changes,
            request_id=event.request_id,
            timestamp=event.timestamp,
        )


@dataclass(frozen=True)
class AuditLogRecord:
    """Immutable audit log row.

    ``timestamp`` is the producer's event time; ``created_at`` is when the
    store wrote the row.
    """

    id: UUID
    event_id: str
    service_name: str
    entity_name: str
    entity_id: str
    action_type: ActionType
    user_id: str | None
    user_info: str | None
    old_value: str | None
    new_value: str | None
    changes: str | None
    request_id: str | None
    timestamp: datetime
    created_at: datetime


@dataclass(frozen=True)
class AuditLogCriteria:
    """Optional AND-combined filters; ``None`` means no filter."""

    service_name: str | None = None
    entity_name: str | None = None
    entity_id: str | None = None
    action_type: ActionType | None = None
    user_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    def matches(self, record: AuditLogRecord) -> bool:
        """Return True if the record satisfies every set filter."""
        checks = (
            (self.service_name, record.service_name),
            (self.entity_name, record.entity_name),
            (self.entity_id, record.entity_id),
            (self.action_type, record.action_type),
            (self.user_id, record.user_id),
        )
        if any(wanted is not None and wanted != value for wanted, value in checks):
            return False
        timestamp = as_utc(record.timestamp)
        if self.start_date is not None and timestamp < as_utc(self.start_date):
            return False
        if self.end_date is not None and timestamp > as_utc(self.end_date):
            return False
        return True


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page of a sorted result set."""

    page: int = 0
    size: int = DEFAULT_PAGE_SIZE
    sort_by: str = DEFAULT_SORT_BY
    sort_dir: str = DEFAULT_SORT_DIR

    def __post_init__(self) -> None:
        if self.sort_by in SORT_ALIASES:
            object.__setattr__(self, "sort_by", SORT_ALIASES[self.sort_by])
        if self.page < 0:
            raise InvalidPageRequestError("page must be zero or greater")
        if not 1 <= self.size <= MAX_PAGE_SIZE:
            raise InvalidPageRequestError(
                f"size must be between 1 and {MAX_PAGE_SIZE}"
            )
        if self.sort_by not in SORTABLE_FIELDS:
            raise InvalidPageRequestError(f"cannot sort by {self.sort_by!r}")
        if self.sort_dir.lower() not in {"asc", "desc"}:
            raise InvalidPageRequestError("sortDir must be 'asc' or 'desc'")

    @property
    def offset(self) -> int:
        return self.page * self.size

    @property
    def descending(self) -> bool:
        return self.sort_dir.lower() == "desc"


@dataclass(frozen=True)
class AuditLogPage:
    """One page of audit logs with paging metadata."""

    content: list[AuditLogRecord]
    page_number: int
    page_size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool

    @classmethod
    def build(
        cls, content: list[AuditLogRecord], request: PageRequest, total: int
    ) -> "AuditLogPage":
        """Assemble a page and derive its metadata from the total count."""
        total_pages = math.ceil(total / request.size) if total else 0
        return cls(
            content=content,
            page_number=request.page,
            page_size=request.size,
            total_elements=total,
            total_pages=total_pages,
            first=request.page == 0,
            last=request.page >= total_pages - 1,
        )


@dataclass(frozen=True)
class AuditLogSummary:
    """Record counts for a set of criteria."""

    total: int
    by_action_type: dict[str, int]
