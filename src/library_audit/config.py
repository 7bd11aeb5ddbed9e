"""Application configuration."""

import os
import socket

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

TOPIC_SUFFIX = "-audit-logs"


def _default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    service_name: str = "history-service"
    redis_url: str = "redis://localhost:6379/0"
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    audit_topic: str | None = None
    audit_topics: str = (
        "book-service-audit-logs,loan-service-audit-logs,"
        "member-service-audit-logs,notification-service-audit-logs"
    )
    audit_partitions: int = 8
    consumer_group: str = "audit-log-consumers"
    consumer_name: str = _default_consumer_name()
    consumer_batch_size: int = 100
    consumer_block_ms: int = 2000
    consumer_worker_count: int = 4
    consumer_lease_ms: int = 30_000
    consumer_retry_backoff_seconds: float = 1.0
    stream_max_length: int | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def producer_topic(self) -> str:
        """Topic this service publishes its own audit events to."""
        return self.audit_topic or default_topic(self.service_name)


def default_topic(service_name: str) -> str:
    """Return the audit topic for a service, e.g. ``book-service-audit-logs``."""
    return f"{service_name.strip()}{TOPIC_SUFFIX}"


def parse_topics(raw: str | None) -> list[str]:
    """Parse a comma-separated topic list, dropping blanks and duplicates."""
    if raw is None:
        return []
    topics: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip()
        if not value or value in topics:
            continue
        topics.append(value)
    return topics
