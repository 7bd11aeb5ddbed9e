"""Audit log read endpoints with simple token auth."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from library_audit.domain.audit_logs import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_DIR,
    MAX_PAGE_SIZE,
    ActionType,
    AuditLogCriteria,
    AuditLogPage,
    AuditLogRecord,
)

if TYPE_CHECKING:
    from library_audit.containers import AppContainer

router = APIRouter(prefix="/api/v1/audit-logs", tags=["audit-logs"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("", dependencies=[Depends(require_admin)])
async def list_audit_logs(  # noqa: PLR0913
    request: Request,
    page: int = Query(0, ge=0),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query(DEFAULT_SORT_BY, alias="sortBy"),
    sort_dir: str = Query(DEFAULT_SORT_DIR, alias="sortDir"),
) -> dict[str, object]:
    """Return a page of all audit logs."""
    container: AppContainer = request.app.state.container
    result = container.query_service.find_all(page, size, sort_by, sort_dir)
    return serialize_page(result)


@router.get("/search", dependencies=[Depends(require_admin)])
async def search_audit_logs(  # noqa: PLR0913
    request: Request,
    service_name: str | None = Query(None, alias="serviceName", max_length=100),
    entity_name: str | None = Query(None, alias="entityName", max_length=100),
    entity_id: str | None = Query(None, alias="entityId", max_length=255),
    action_type: ActionType | None = Query(None, alias="actionType"),
    user_id: str | None = Query(None, alias="userId", max_length=36),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    page: int = Query(0, ge=0),
    size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query(DEFAULT_SORT_BY, alias="sortBy"),
    sort_dir: str = Query(DEFAULT_SORT_DIR, alias="sortDir"),
) -> dict[str, object]:
    """Return a page of audit logs matching every given filter."""
    container: AppContainer = request.app.state.container
    criteria = AuditLogCriteria(
        service_name=service_name,
        entity_name=entity_name,
        entity_id=entity_id,
        action_type=action_type,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
    result = container.query_service.search(criteria, page, size, sort_by, sort_dir)
    return serialize_page(result)


@router.get("/summary", dependencies=[Depends(require_admin)])
async def audit_log_summary(
    request: Request,
    service_name: str | None = Query(None, alias="serviceName", max_length=100),
) -> dict[str, object]:
    """Return audit log counts by action type."""
    container: AppContainer = request.app.state.container
    summary = container.query_service.summary(
        AuditLogCriteria(service_name=service_name)
    )
    return {"total": summary.total, "byActionType": summary.by_action_type}


@router.get(
    "/entities/{entity_name}/{entity_id}", dependencies=[Depends(require_admin)]
)
async def entity_history(
    entity_name: str,
    entity_id: str,
    request: Request,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> dict[str, object]:
    """Return the most recent audit logs for one entity."""
    container: AppContainer = request.app.state.container
    records = container.query_service.entity_history(entity_name, entity_id, limit)
    return {"content": [serialize_record(record) for record in records]}


@router.get("/{audit_log_id}", dependencies=[Depends(require_admin)])
async def get_audit_log(audit_log_id: UUID, request: Request) -> dict[str, object]:
    """Return a single audit log."""
    container: AppContainer = request.app.state.container
    return serialize_record(container.query_service.find_by_id(audit_log_id))


def serialize_record(record: AuditLogRecord) -> dict[str, object]:
    """Render an audit log with the camelCase keys the dashboards expect."""
    return {
        "id": str(record.id),
        "eventId": record.event_id,
        "serviceName": record.service_name,
        "entityName": record.entity_name,
        "entityId": record.entity_id,
        "actionType": record.action_type.value,
        "userId": record.user_id,
        "userInfo": record.user_info,
        "oldValue": record.old_value,
        "newValue": record.new_value,
        "changes": record.changes,
        "requestId": record.request_id,
        "timestamp": record.timestamp.isoformat(),
        "createdAt": record.created_at.isoformat(),
    }


def serialize_page(page: AuditLogPage) -> dict[str, object]:
    """Render a page of audit logs with its paging metadata."""
    return {
        "content": [serialize_record(record) for record in page.content],
        "pageNumber": page.page_number,
        "pageSize": page.page_size,
        "totalElements": page.total_elements,
        "totalPages": page.total_pages,
        "first": page.first,
        "last": page.last,
    }
