"""Audit log persistence interface and read/write services."""

import logging
from dataclasses import dataclass, replace
from typing import Protocol
from uuid import UUID

from library_audit.domain.audit_logs import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_DIR,
    MAX_PAGE_SIZE,
    ActionType,
    AuditLogCriteria,
    AuditLogDraft,
    AuditLogPage,
    AuditLogRecord,
    AuditLogSummary,
    PageRequest,
)
from library_audit.domain.events import AuditEvent
from library_audit.errors import AuditLogNotFoundError

_logger = logging.getLogger(__name__)


class AuditLogStore(Protocol):
    """Append-only persistence for audit logs."""

    def insert(self, draft: AuditLogDraft) -> UUID:
        """Store a record and return its id; a known event id is not rewritten."""

    def find_by_id(self, audit_log_id: UUID) -> AuditLogRecord | None:
        """Return a record by id, if present."""

    def search(
        self, criteria: AuditLogCriteria, page_request: PageRequest
    ) -> AuditLogPage:
        """Return one sorted page of records matching the criteria."""

    def find_all(self, page_request: PageRequest) -> AuditLogPage:
        """Return one sorted page of all records."""

    def count(self, criteria: AuditLogCriteria) -> int:
        """Return the number of records matching the criteria."""


@dataclass
class AuditLogWriter:
    """Turns consumed audit events into stored records."""

    store: AuditLogStore

    def record(self, event: AuditEvent) -> UUID:
        """Persist an event and return the stored record id."""
        audit_log_id = self.store.insert(AuditLogDraft.from_event(event))
        _logger.debug(
            "Stored audit log: id=%s event_id=%s entity=%s/%s",
            audit_log_id,
            event.event_id,
            event.entity_type,
            event.entity_id,
        )
        return audit_log_id


@dataclass
class AuditQueryService:
    """Read-side facade over the audit log store."""

    store: AuditLogStore

    def find_all(
        self,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
        sort_by: str = DEFAULT_SORT_BY,
        sort_dir: str = DEFAULT_SORT_DIR,
    ) -> AuditLogPage:
        """Return a page of all audit logs."""
        return self.store.find_all(PageRequest(page, size, sort_by, sort_dir))

    def search(  # noqa: PLR0913
        self,
        criteria: AuditLogCriteria | None = None,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
        sort_by: str = DEFAULT_SORT_BY,
        sort_dir: str = DEFAULT_SORT_DIR,
    ) -> AuditLogPage:
        """Return a page of audit logs matching the criteria."""
        criteria = criteria or AuditLogCriteria()
        _logger.debug("Searching audit logs: criteria=%s", criteria)
        return self.store.search(criteria, PageRequest(page, size, sort_by, sort_dir))

    def find_by_id(self, audit_log_id: UUID) -> AuditLogRecord:
        """Return an audit log or raise ``AuditLogNotFoundError``."""
        record = self.store.find_by_id(audit_log_id)
        if record is None:
            raise AuditLogNotFoundError(audit_log_id)
        return record

    def entity_history(
        self, entity_name: str, entity_id: str, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[AuditLogRecord]:
        """Return the most recent audit logs for one entity, newest first."""
        criteria = AuditLogCriteria(entity_name=entity_name, entity_id=entity_id)
        size = max(1, min(limit, MAX_PAGE_SIZE))
        return self.store.search(criteria, PageRequest(size=size)).content

    def summary(self, criteria: AuditLogCriteria | None = None) -> AuditLogSummary:
        """Count audit logs overall and per action type."""
        criteria = criteria or AuditLogCriteria()
        by_action_type = {}
        for action_type in ActionType:
            if criteria.action_type not in {None, action_type}:
                by_action_type[action_type.value] = 0
                continue
            by_action_type[action_type.value] = self.store.count(
                replace(criteria, action_type=action_type)
            )
        return AuditLogSummary(
            total=sum(by_action_type.values()), by_action_type=by_action_type
        )

