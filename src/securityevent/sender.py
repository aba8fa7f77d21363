"""HTTP delivery of security event batches.

One `send()` call serializes the batch to a JSON array and issues exactly one
POST. The HTTP call uses `requests` executed in a thread so the async caller
never blocks the event loop.

Outcome classification:
- transport failure (connect error, timeout, unsendable request) -> `TransportError`
- non-2xx status -> `DeliveryRejectedError`
- any 2xx status -> success for the whole batch
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

import requests  # type: ignore
import structlog

from config import ExporterConfig
from observability.metrics import DeliveryMetrics

from .converter import SecurityEvent, truncate_string
from .errors import DeliveryError, DeliveryRejectedError, SerializationError, TransportError

logger = structlog.get_logger(__name__)

PAYLOAD_PREVIEW_LENGTH = 200
BODY_PREVIEW_LENGTH = 500

_SENSITIVE_HEADER_MARKERS = ("authorization", "cookie", "api-key", "auth-token")


def is_sensitive_header(header_name: str) -> bool:
    """Return True if a header name looks like it carries credentials."""
    header_lower = header_name.lower()
    return any(marker in header_lower for marker in _SENSITIVE_HEADER_MARKERS)


def serialize_batch(events: Sequence[SecurityEvent]) -> bytes:
    """Encode a batch as a JSON array of flat objects."""
    try:
        return json.dumps(list(events), sort_keys=True, separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(
            f"failed to marshal security event batch: {exc}",
            event_count=len(events),
        ) from exc


@dataclass(frozen=True)
class Sent:
    status_code: int
    duration: float


@dataclass(frozen=True)
class Failed:
    error: DeliveryError
    duration: float | None = None


SendResult: TypeAlias = Sent | Failed


@dataclass(frozen=True)
class _Response:
    status_code: int
    reason: str
    body_preview: str | None


def _read_preview(resp: Any) -> str | None:
    """Best-effort, bounded read of an error response body."""
    try:
        chunk = next(resp.iter_content(chunk_size=BODY_PREVIEW_LENGTH + 1), b"")
    except (requests.RequestException, ValueError):
        return None
    if not chunk:
        return None
    text = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else str(chunk)
    return truncate_string(text, BODY_PREVIEW_LENGTH)


class BatchSender:
    """Delivers batches to the configured endpoint and records delivery metrics."""

    def __init__(self, config: ExporterConfig, metrics: DeliveryMetrics) -> None:
        self.config = config
        self.metrics = metrics

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        for name, value in self.config.header_values().items():
            headers[name] = value
            logger.debug("Added custom header", header_name=name, is_sensitive=is_sensitive_header(name))
        logger.debug("Set HTTP headers for batch", total_headers=len(headers))
        return headers

    def _post(self, payload: bytes, headers: dict[str, str]) -> _Response:
        """Execute the HTTP request synchronously (runs in a worker thread)."""
        resp = requests.post(
            self.config.endpoint,
            data=payload,
            headers=headers,
            timeout=self.config.timeout,
            stream=True,
        )
        try:
            preview = None
            if not 200 <= resp.status_code < 300:
                preview = _read_preview(resp)
            return _Response(status_code=resp.status_code, reason=resp.reason or "", body_preview=preview)
        finally:
            resp.close()

    async def send(self, events: Sequence[SecurityEvent]) -> SendResult:
        """Serialize and POST a batch; classify the outcome.

        Cancellation of the awaiting task is recorded as a failed request and
        re-raised.
        """
        event_count = len(events)
        logger.debug("Starting to send security event batch", endpoint=self.config.endpoint, event_count=event_count)

        try:
            payload = serialize_batch(events)
        except SerializationError as exc:
            logger.error("Failed to marshal security event batch to JSON", error=str(exc), event_count=event_count)
            self.metrics.add_http_error()
            return Failed(exc)

        logger.debug(
            "Successfully marshaled security event batch to JSON",
            json_size_bytes=len(payload),
            event_count=event_count,
            json_preview=truncate_string(payload.decode("utf-8"), PAYLOAD_PREVIEW_LENGTH),
        )

        headers = self._build_headers()
        logger.debug(
            "Sending HTTP request for batch",
            endpoint=self.config.endpoint,
            timeout=self.config.timeout,
            event_count=event_count,
        )

        start = time.monotonic()
        try:
            resp = await asyncio.to_thread(self._post, payload, headers)
        except asyncio.CancelledError:
            duration = time.monotonic() - start
            self.metrics.record_http_request(duration, failed=True)
            logger.error(
                "HTTP request for batch was cancelled",
                endpoint=self.config.endpoint,
                request_duration=duration,
                event_count=event_count,
            )
            raise
        except requests.RequestException as exc:
            duration = time.monotonic() - start
            self.metrics.record_http_request(duration, failed=True)
            logger.error(
                "Failed to send HTTP request for batch",
                error=str(exc),
                endpoint=self.config.endpoint,
                request_duration=duration,
                timeout=self.config.timeout,
                event_count=event_count,
            )
            error = TransportError(f"failed to send HTTP request: {exc}", event_count=event_count)
            error.__cause__ = exc
            return Failed(error, duration)
        except Exception as exc:
            # Unencodable header values or a bad timeout fail inside http.client.
            duration = time.monotonic() - start
            self.metrics.record_http_request(duration, failed=True)
            logger.error(
                "Failed to build HTTP request for batch",
                error=str(exc),
                error_type=type(exc).__name__,
                endpoint=self.config.endpoint,
                request_duration=duration,
                event_count=event_count,
            )
            error = TransportError(f"failed to send HTTP request: {exc}", event_count=event_count)
            error.__cause__ = exc
            return Failed(error, duration)

        duration = time.monotonic() - start
        succeeded = 200 <= resp.status_code < 300
        self.metrics.record_http_request(duration, failed=not succeeded)

        logger.debug(
            "Received HTTP response for batch",
            status_code=resp.status_code,
            status=resp.reason,
            request_duration=duration,
            event_count=event_count,
        )

        if not succeeded:
            logger.error(
                "HTTP request failed with non-success status for batch",
                status_code=resp.status_code,
                status=resp.reason,
                endpoint=self.config.endpoint,
                request_duration=duration,
                event_count=event_count,
            )
            if resp.body_preview:
                logger.error("HTTP error response body for batch", response_body=resp.body_preview)
            return Failed(
                DeliveryRejectedError(
                    status_code=resp.status_code,
                    reason=resp.reason,
                    body_preview=resp.body_preview,
                    event_count=event_count,
                ),
                duration,
            )

        logger.debug(
            "Successfully sent security event batch",
            status_code=resp.status_code,
            request_duration=duration,
            json_size_bytes=len(payload),
            event_count=event_count,
        )
        return Sent(status_code=resp.status_code, duration=duration)
