"""Dependency container wiring for the application."""

from collections.abc import Callable
from dataclasses import dataclass

from supabase import create_client

from library_audit.adapters.redis_stream_bus import RedisStreamBus
from library_audit.adapters.supabase_audit_log_store import SupabaseAuditLogStore
from library_audit.config import Settings, parse_topics
from library_audit.services.audit import AuditService
from library_audit.services.audit_logs import AuditLogWriter, AuditQueryService
from library_audit.services.consumer import AuditEventConsumer
from library_audit.services.publisher import EventPublisher


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    publisher: EventPublisher
    audit_service: AuditService
    consumer: AuditEventConsumer
    query_service: AuditQueryService
    close_resources: Callable[[], None]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    bus = RedisStreamBus.create(
        resolved_settings.redis_url,
        partitions=resolved_settings.audit_partitions,
        max_length=resolved_settings.stream_max_length,
        lease_ms=resolved_settings.consumer_lease_ms,
    )
    store = SupabaseAuditLogStore(supabase_client)
    publisher = EventPublisher(
        bus=bus, default_topic=resolved_settings.producer_topic
    )
    audit_service = AuditService(
        publisher=publisher, service_name=resolved_settings.service_name
    )
    consumer = AuditEventConsumer(
        bus=bus,
        writer=AuditLogWriter(store),
        topics=parse_topics(resolved_settings.audit_topics),
        group=resolved_settings.consumer_group,
        consumer_name=resolved_settings.consumer_name,
        batch_size=resolved_settings.consumer_batch_size,
        block_ms=resolved_settings.consumer_block_ms,
        worker_count=resolved_settings.consumer_worker_count,
        retry_backoff_seconds=resolved_settings.consumer_retry_backoff_seconds,
    )
    query_service = AuditQueryService(store)

    def close_resources() -> None:
        publisher.close(timeout=5)
        bus.close()

    return AppContainer(
        settings=resolved_settings,
        publisher=publisher,
        audit_service=audit_service,
        consumer=consumer,
        query_service=query_service,
        close_resources=close_resources,
    )
