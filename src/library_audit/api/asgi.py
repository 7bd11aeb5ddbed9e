"""ASGI entrypoint for the audit log API."""

from library_audit.api.app import create_app
from library_audit.containers import build_container

app = create_app(build_container())
