"""Log record to security event conversion.

A security event is a flat mapping. Keys are written in a fixed order, and a
later write replaces an earlier one with the same key:

1. default attributes, verbatim (bare keys)
2. resource attributes as `resource.<key>` (stringified)
3. record attributes as `attributes.<key>` (stringified)
4. `timestamp`, `severity`, `severity_number`
5. `trace_id` / `span_id` when the record carries them
6. `message` from a textual or binary body
"""

from __future__ import annotations

import base64
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, TypeAlias

import structlog

from otlp.models import LogRecord

from .errors import ConversionError

logger = structlog.get_logger(__name__)

SecurityEvent: TypeAlias = dict[str, Any]

RESOURCE_PREFIX = "resource."
ATTRIBUTES_PREFIX = "attributes."
MESSAGE_PREVIEW_LENGTH = 100


@dataclass(frozen=True)
class Converted:
    event: SecurityEvent


@dataclass(frozen=True)
class Skipped:
    error: ConversionError

    @property
    def reason(self) -> str:
        return str(self.error)


ConversionResult: TypeAlias = Converted | Skipped


def truncate_string(s: str, max_len: int) -> str:
    """Truncate `s` to `max_len` characters, adding an ellipsis when cut."""
    if len(s) <= max_len:
        return s
    return s[:max_len] + "..."


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    # Shortest round-trip digits, positional notation (no exponent).
    return format(Decimal(repr(value)).normalize(), "f")


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"unsupported attribute value type: {type(value).__name__}")


def as_string(value: Any) -> str:
    """Render an attribute value as a string.

    Booleans are lowercase, floats use plain positional notation (integral
    floats drop the fractional part), bytes are base64 encoded and lists/maps
    become compact JSON with sorted keys.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)
    raise TypeError(f"unsupported attribute value type: {type(value).__name__}")


def format_timestamp(ts: datetime) -> str:
    """Format as RFC 3339 with second precision; UTC renders as `Z`."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    formatted = ts.isoformat(timespec="seconds")
    if formatted.endswith("+00:00"):
        formatted = formatted[: -len("+00:00")] + "Z"
    return formatted


def _is_empty_id(value: bytes) -> bool:
    return not value or not any(value)


def _build_event(record: LogRecord, resource_attrs: Mapping[str, Any], default_attrs: Mapping[str, Any]) -> SecurityEvent:
    event: SecurityEvent = {}

    for key, value in default_attrs.items():
        event[key] = value
    logger.debug("Added default attributes", count=len(default_attrs))

    for key, value in resource_attrs.items():
        event[RESOURCE_PREFIX + key] = as_string(value)
    logger.debug("Added resource attributes", count=len(resource_attrs))

    for key, value in record.attributes.items():
        event[ATTRIBUTES_PREFIX + key] = as_string(value)
    logger.debug("Added log attributes", count=len(record.attributes))

    event["timestamp"] = format_timestamp(record.timestamp)
    event["severity"] = record.severity_text
    event["severity_number"] = record.severity_number

    if not _is_empty_id(record.trace_id):
        event["trace_id"] = record.trace_id.hex()
    if not _is_empty_id(record.span_id):
        event["span_id"] = record.span_id.hex()

    body = record.body
    if isinstance(body, str):
        event["message"] = body
        logger.debug("Added string message body", message_preview=truncate_string(body, MESSAGE_PREVIEW_LENGTH))
    elif isinstance(body, (bytes, bytearray)):
        event["message"] = bytes(body).decode("utf-8", errors="replace")
        logger.debug("Added bytes message body", message_length=len(body))
    else:
        logger.debug("Log body has unsupported type", type=type(body).__name__)

    return event


def convert_log_record(
    record: LogRecord,
    resource_attrs: Mapping[str, Any],
    default_attrs: Mapping[str, Any],
) -> ConversionResult:
    """Convert one log record (plus its resource attributes) into a security event.

    Never raises for a bad record: a record that cannot be converted comes
    back as `Skipped` so the caller can count it and move on.
    """
    try:
        event = _build_event(record, resource_attrs, default_attrs)
    except (TypeError, ValueError, OverflowError, OSError, AttributeError) as exc:
        return Skipped(ConversionError(f"failed to convert log record: {exc}"))

    logger.debug("Completed log to security event conversion", total_fields=len(event))
    return Converted(event)
