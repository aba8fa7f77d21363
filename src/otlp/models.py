"""Inbound OpenTelemetry log models consumed by the exporter.

These models mirror the OTLP logs hierarchy:

    Logs -> ResourceLogs -> ScopeLogs -> LogRecord

They are read-only inputs. Attribute values are kept as plain Python values
(`str`, `bool`, `int`, `float`, `bytes`, `list`, `dict` or `None`). A record
body is textual (`str`), binary (`bytes`) or anything else.
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _parse_id(value: Any) -> Any:
    """Accept trace/span identifiers as raw bytes or hex strings."""
    if value is None:
        return b""
    if isinstance(value, str):
        return bytes.fromhex(value)
    return value


def _parse_any_value(value: Any) -> Any:
    """Decode an OTLP/JSON `AnyValue` object into a plain Python value."""
    if not isinstance(value, dict) or not value:
        return None
    if "stringValue" in value:
        return value["stringValue"]
    if "boolValue" in value:
        return bool(value["boolValue"])
    if "intValue" in value:
        # OTLP/JSON encodes 64-bit integers as strings.
        return int(value["intValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "arrayValue" in value:
        return [_parse_any_value(v) for v in value["arrayValue"].get("values", [])]
    if "kvlistValue" in value:
        return _parse_key_values(value["kvlistValue"].get("values", []))
    return None


def _parse_key_values(items: list[dict[str, Any]] | None) -> dict[str, Any]:
    """Decode an OTLP/JSON `KeyValue` list into a mapping (last key wins)."""
    result: dict[str, Any] = {}
    for item in items or []:
        if not isinstance(item, dict) or "key" not in item:
            raise ValueError(f"attribute entry without a key: {item!r}")
        result[item["key"]] = _parse_any_value(item.get("value"))
    return result


class _Model(BaseModel):
    # Inbound payloads carry more fields than we consume.
    model_config = ConfigDict(extra="ignore", frozen=True)


class LogRecord(_Model):
    """A single structured log record."""

    time_unix_nano: int = 0
    observed_time_unix_nano: int = 0
    severity_text: str = ""
    severity_number: int = 0
    trace_id: bytes = b""
    span_id: bytes = b""
    attributes: dict[str, Any] = Field(default_factory=dict)
    body: Any = None

    @field_validator("trace_id", "span_id", mode="before")
    def parse_ids(cls, value: Any) -> Any:
        return _parse_id(value)

    @property
    def timestamp(self) -> datetime:
        """Record timestamp as an aware UTC datetime."""
        seconds, nanos = divmod(self.time_unix_nano, 1_000_000_000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=nanos // 1000)

    @classmethod
    def from_otlp_json(cls, payload: dict[str, Any]) -> LogRecord:
        return cls(
            time_unix_nano=int(payload.get("timeUnixNano") or 0),
            observed_time_unix_nano=int(payload.get("observedTimeUnixNano") or 0),
            severity_text=payload.get("severityText") or "",
            severity_number=int(payload.get("severityNumber") or 0),
            trace_id=payload.get("traceId") or b"",
            span_id=payload.get("spanId") or b"",
            attributes=_parse_key_values(payload.get("attributes")),
            body=_parse_any_value(payload.get("body")),
        )


class Resource(_Model):
    """Origin of a group of records; attributes are shared by all of them."""

    attributes: dict[str, Any] = Field(default_factory=dict)


class InstrumentationScope(_Model):
    name: str = ""
    version: str = ""


class ScopeLogs(_Model):
    scope: InstrumentationScope = Field(default_factory=InstrumentationScope)
    log_records: list[LogRecord] = Field(default_factory=list)


class ResourceLogs(_Model):
    resource: Resource = Field(default_factory=Resource)
    scope_logs: list[ScopeLogs] = Field(default_factory=list)


class Logs(_Model):
    """One inbound unit of work: a bundle of resource/scope/record groups."""

    resource_logs: list[ResourceLogs] = Field(default_factory=list)

    def log_record_count(self) -> int:
        """Return the number of leaf log records across all groups."""
        return sum(len(sl.log_records) for rl in self.resource_logs for sl in rl.scope_logs)

    @classmethod
    def from_otlp_json(cls, payload: dict[str, Any]) -> Logs:
        """Build a `Logs` bundle from an OTLP/JSON `ExportLogsServiceRequest` payload.

        Raises `ValueError` for an attribute entry without a `key`.
        """
        resource_logs: list[ResourceLogs] = []
        for rl in payload.get("resourceLogs", []):
            scope_logs = [
                ScopeLogs(
                    scope=InstrumentationScope(
                        name=(sl.get("scope") or {}).get("name", ""),
                        version=(sl.get("scope") or {}).get("version", ""),
                    ),
                    log_records=[LogRecord.from_otlp_json(r) for r in sl.get("logRecords", [])],
                )
                for sl in rl.get("scopeLogs", [])
            ]
            resource = Resource(attributes=_parse_key_values((rl.get("resource") or {}).get("attributes")))
            resource_logs.append(ResourceLogs(resource=resource, scope_logs=scope_logs))
        return cls(resource_logs=resource_logs)
