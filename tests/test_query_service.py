"""Tests for the audit log query service."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from library_audit.domain.audit_logs import (
    ActionType,
    AuditLogCriteria,
    AuditLogDraft,
    PageRequest,
)
from library_audit.errors import AuditLogNotFoundError, InvalidPageRequestError
from library_audit.services.audit_logs import AuditQueryService
from tests.conftest import InMemoryAuditLogStore

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def _store_log(
    store: InMemoryAuditLogStore,
    minutes: int,
    *,
    service_name: str = "book-service",
    entity_name: str = "Book",
    entity_id: str = "42",
    action_type: ActionType = ActionType.UPDATE,
    user_id: str | None = "u1",
):
    audit_log_id = store.insert(
        AuditLogDraft(
            event_id=uuid4().hex,
            service_name=service_name,
            entity_name=entity_name,
            entity_id=entity_id,
            action_type=action_type,
            user_id=user_id,
            user_info=None,
            old_value=None if action_type is ActionType.CREATE else "{}",
            new_value=None if action_type is ActionType.DELETE else "{}",
            changes=None,
            request_id=None,
            timestamp=BASE_TIME + timedelta(minutes=minutes),
        )
    )
    return store.find_by_id(audit_log_id)


def test_empty_store_returns_empty_first_and_last_page(
    query_service: AuditQueryService,
) -> None:
    page = query_service.find_all(page=0, size=20)

    assert page.content == []
    assert page.total_elements == 0
    assert page.total_pages == 0
    assert page.first is True
    assert page.last is True


def test_paging_metadata(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    for minute in range(7):
        _store_log(store, minute)

    first = query_service.find_all(page=0, size=3)
    middle = query_service.find_all(page=1, size=3)
    last = query_service.find_all(page=2, size=3)

    assert (first.total_elements, first.total_pages) == (7, 3)
    assert (first.first, first.last) == (True, False)
    assert (middle.first, middle.last) == (False, False)
    assert (last.first, last.last) == (False, True)
    assert len(last.content) == 1
    seen = [record.id for page in (first, middle, last) for record in page.content]
    assert len(set(seen)) == 7


def test_entity_search_returns_newest_first(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    created = _store_log(store, 0, action_type=ActionType.CREATE)
    updated = _store_log(store, 5)
    deleted = _store_log(store, 10, action_type=ActionType.DELETE)
    _store_log(store, 3, entity_id="43")

    page = query_service.search(AuditLogCriteria(entity_name="Book", entity_id="42"))

    assert [record.id for record in page.content] == [
        deleted.id,
        updated.id,
        created.id,
    ]
    assert page.total_elements == 3


def test_search_is_repeatable(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    for minute in range(4):
        _store_log(store, minute % 2)
    criteria = AuditLogCriteria(service_name="book-service")

    first = query_service.search(criteria, size=2)
    second = query_service.search(criteria, size=2)

    assert first == second


def test_filters_combine(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    wanted = _store_log(store, 15, user_id="u2", action_type=ActionType.DELETE)
    _store_log(store, 15, user_id="u1", action_type=ActionType.DELETE)
    _store_log(store, 16, user_id="u2", action_type=ActionType.UPDATE)
    _store_log(store, 40, user_id="u2", action_type=ActionType.DELETE)
    _store_log(
        store,
        15,
        service_name="loan-service",
        user_id="u2",
        action_type=ActionType.DELETE,
    )

    page = query_service.search(
        AuditLogCriteria(
            service_name="book-service",
            user_id="u2",
            action_type=ActionType.DELETE,
            start_date=BASE_TIME + timedelta(minutes=10),
            end_date=BASE_TIME + timedelta(minutes=30),
        )
    )

    assert [record.id for record in page.content] == [wanted.id]


def test_date_range_bounds_are_inclusive(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    _store_log(store, 0)
    _store_log(store, 10)
    _store_log(store, 20)

    page = query_service.search(
        AuditLogCriteria(
            start_date=BASE_TIME,
            end_date=(BASE_TIME + timedelta(minutes=10)).replace(tzinfo=None),
        )
    )

    assert page.total_elements == 2


def test_ascending_sort_on_other_field(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    _store_log(store, 0, entity_id="b")
    _store_log(store, 1, entity_id="c")
    _store_log(store, 2, entity_id="a")

    page = query_service.find_all(sort_by="entity_id", sort_dir="ASC")

    assert [record.entity_id for record in page.content] == ["a", "b", "c"]


def test_find_by_id_missing_raises(query_service: AuditQueryService) -> None:
    missing = uuid4()

    with pytest.raises(AuditLogNotFoundError) as exc_info:
        query_service.find_by_id(missing)

    assert exc_info.value.error_code == "AUDIT_LOG_NOT_FOUND"
    assert str(missing) in exc_info.value.message


def test_entity_history_is_limited_and_newest_first(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    for minute in range(5):
        _store_log(store, minute)
    _store_log(store, 99, entity_name="Loan")

    history = query_service.entity_history("Book", "42", limit=3)

    assert [record.timestamp for record in history] == [
        BASE_TIME + timedelta(minutes=4),
        BASE_TIME + timedelta(minutes=3),
        BASE_TIME + timedelta(minutes=2),
    ]
    assert len(query_service.entity_history("Book", "42", limit=500)) == 5


def test_summary_counts_by_action_type(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    _store_log(store, 0, action_type=ActionType.CREATE)
    _store_log(store, 1)
    _store_log(store, 2)
    _store_log(store, 3, action_type=ActionType.DELETE, service_name="loan-service")

    overall = query_service.summary()
    books = query_service.summary(AuditLogCriteria(service_name="book-service"))
    creates = query_service.summary(AuditLogCriteria(action_type=ActionType.CREATE))

    assert overall.total == 4
    assert overall.by_action_type == {"CREATE": 1, "UPDATE": 2, "DELETE": 1}
    assert books.by_action_type == {"CREATE": 1, "UPDATE": 2, "DELETE": 0}
    assert creates.total == 1
    assert creates.by_action_type["UPDATE"] == 0


@pytest.mark.parametrize(
    ("page", "size", "sort_by", "sort_dir"),
    [
        (-1, 20, "timestamp", "desc"),
        (0, 0, "timestamp", "desc"),
        (0, 101, "timestamp", "desc"),
        (0, 20, "old_value", "desc"),
        (0, 20, "timestamp", "sideways"),
    ],
)
def test_invalid_page_requests_are_rejected(
    query_service: AuditQueryService,
    page: int,
    size: int,
    sort_by: str,
    sort_dir: str,
) -> None:
    with pytest.raises(InvalidPageRequestError):
        query_service.find_all(page, size, sort_by, sort_dir)


def test_page_request_offset() -> None:
    request = PageRequest(page=3, size=25, sort_dir="ASC")

    assert request.offset == 75
    assert request.descending is False


def test_camel_case_sort_names_map_to_columns(
    store: InMemoryAuditLogStore, query_service: AuditQueryService
) -> None:
    _store_log(store, 0, entity_id="b")
    _store_log(store, 1, entity_id="a")

    page = query_service.find_all(sort_by="entityId", sort_dir="asc")

    assert [record.entity_id for record in page.content] == ["a", "b"]
    assert PageRequest(sort_by="createdAt").sort_by == "created_at"
