"""Entrypoint for the audit event consumer process."""

import logging
import signal
import threading

from library_audit.app_logging import configure_logging
from library_audit.containers import build_container

_logger = logging.getLogger(__name__)


def main() -> None:
    """Run the consumer until SIGINT or SIGTERM."""
    configure_logging()
    container = build_container()
    stop_event = threading.Event()

    def _request_stop(signum: int, _frame: object) -> None:
        _logger.info("Stopping audit consumer: signal=%s", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    _logger.info(
        "Audit consumer starting: service=%s group=%s",
        container.settings.service_name,
        container.settings.consumer_group,
    )
    try:
        container.consumer.run(stop_event)
    finally:
        container.close_resources()


if __name__ == "__main__":
    main()
