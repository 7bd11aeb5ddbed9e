"""Exceptions raised by the audit pipeline."""

from uuid import UUID


class AuditPipelineError(Exception):
    """Base error for the audit pipeline."""

    error_code: str = "AUDIT_PIPELINE_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuditEventDecodeError(AuditPipelineError):
    """Raised when a bus payload cannot be parsed into an audit event."""

    error_code = "AUDIT_EVENT_DECODE_ERROR"


class AuditEventValidationError(AuditPipelineError):
    """Raised when an audit event breaks the event-type value rules."""

    error_code = "AUDIT_EVENT_INVALID"

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


class PublisherClosedError(AuditPipelineError):
    """Raised when publishing on a closed publisher."""

    error_code = "PUBLISHER_CLOSED"


class AuditLogNotFoundError(AuditPipelineError):
    """Raised when an audit log record does not exist."""

    error_code = "AUDIT_LOG_NOT_FOUND"

    def __init__(self, audit_log_id: UUID) -> None:
        self.audit_log_id = audit_log_id
        super().__init__(f"Audit log not found with id: {audit_log_id}")


class InvalidPageRequestError(AuditPipelineError):
    """Raised for out-of-range paging or unknown sort parameters."""

    error_code = "VALIDATION_ERROR"
