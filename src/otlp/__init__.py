"""Inbound OpenTelemetry log data model."""

from .models import InstrumentationScope, LogRecord, Logs, Resource, ResourceLogs, ScopeLogs

__all__ = [
    "InstrumentationScope",
    "LogRecord",
    "Logs",
    "Resource",
    "ResourceLogs",
    "ScopeLogs",
]
