"""Supabase-backed audit log store."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client

from library_audit.domain.audit_logs import (
    ActionType,
    AuditLogCriteria,
    AuditLogDraft,
    AuditLogPage,
    AuditLogRecord,
    PageRequest,
)
from library_audit.services.audit_logs import AuditLogStore

_TABLE = "audit_logs"
_RANGE_NOT_SATISFIABLE = "PGRST103"


@dataclass
class SupabaseAuditLogStore(AuditLogStore):
    """Audit logs in the ``audit_logs`` table, unique on ``event_id``."""

    client: Client

    def insert(self, draft: AuditLogDraft) -> UUID:
        """Insert a row; an already stored event id returns the existing row."""
        response = (
            self.client.table(_TABLE)
            .upsert(
                {
                    "event_id": draft.event_id,
                    "service_name": draft.service_name,
                    "entity_name": draft.entity_name,
                    "entity_id": draft.entity_id,
                    "action_type": draft.action_type.value,
                    "user_id": draft.user_id,
                    "user_info": draft.user_info,
                    "old_value": draft.old_value,
                    "new_value": draft.new_value,
                    "changes": draft.changes,
                    "request_id": draft.request_id,
                    "timestamp": draft.timestamp.isoformat(),
                },
                on_conflict="event_id",
                ignore_duplicates=True,
            )
            .execute()
        )
        if response.data:
            return UUID(response.data[0]["id"])
        existing = (
            self.client.table(_TABLE)
            .select("id")
            .eq("event_id", draft.event_id)
            .limit(1)
            .execute()
        )
        if not existing.data:
            raise RuntimeError("Failed to create audit log")
        return UUID(existing.data[0]["id"])

    def find_by_id(self, audit_log_id: UUID) -> AuditLogRecord | None:
        """Return an audit log by id, if present."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("id", str(audit_log_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_record(response.data[0])

    def search(
        self, criteria: AuditLogCriteria, page_request: PageRequest
    ) -> AuditLogPage:
        """Return a page of audit logs matching the criteria."""
        query = _apply_criteria(
            self.client.table(_TABLE).select("*", count="exact"), criteria
        )
        desc = page_request.descending
        try:
            response = (
                query.order(page_request.sort_by, desc=desc)
                .order("created_at", desc=desc)
                .order("id", desc=desc)
                .range(
                    page_request.offset, page_request.offset + page_request.size - 1
                )
                .execute()
            )
        except APIError as exc:
            # PostgREST rejects an offset past the last row instead of
            # returning an empty range.
            if exc.code != _RANGE_NOT_SATISFIABLE:
                raise
            return AuditLogPage.build([], page_request, self.count(criteria))
        records = [_row_to_record(row) for row in response.data or []]
        total = response.count if response.count is not None else len(records)
        return AuditLogPage.build(records, page_request, total)

    def find_all(self, page_request: PageRequest) -> AuditLogPage:
        """Return a page of all audit logs."""
        return self.search(AuditLogCriteria(), page_request)

    def count(self, criteria: AuditLogCriteria) -> int:
        """Return the number of audit logs matching the criteria."""
        query = _apply_criteria(
            self.client.table(_TABLE).select("id", count="exact"), criteria
        )
        response = query.limit(1).execute()
        return response.count or 0


def _apply_criteria(query: Any, criteria: AuditLogCriteria) -> Any:
    equals = {
        "service_name": criteria.service_name,
        "entity_name": criteria.entity_name,
        "entity_id": criteria.entity_id,
        "action_type": criteria.action_type.value if criteria.action_type else None,
        "user_id": criteria.user_id,
    }
    for column, value in equals.items():
        if value is not None:
            query = query.eq(column, value)
    if criteria.start_date is not None:
        query = query.gte("timestamp", criteria.start_date.isoformat())
    if criteria.end_date is not None:
        query = query.lte("timestamp", criteria.end_date.isoformat())
    return query


def _parse_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_record(row: dict[str, Any]) -> AuditLogRecord:
    return AuditLogRecord(
        id=UUID(row["id"]),
        event_id=row["event_id"],
        service_name=row["service_name"],
        entity_name=row["entity_name"],
        entity_id=row["entity_id"],
        action_type=ActionType(row["action_type"]),
        user_id=row.get("user_id"),
        user_info=row.get("user_info"),
        old_value=row.get("old_value"),
        new_value=row.get("new_value"),
        changes=row.get("changes"),
        request_id=row.get("request_id"),
        timestamp=_parse_datetime(row["timestamp"]),
        created_at=_parse_datetime(row["created_at"]),
    )
