"""Security event exporter exceptions.

Delivery errors describe a whole-batch failure: the batch is sent with one
POST, so it is either delivered in full or not at all.
"""

from __future__ import annotations


class SecurityEventExporterError(RuntimeError):
    """Base class for exporter errors."""


class ConfigurationError(SecurityEventExporterError):
    """Raised when the exporter cannot be created from the given configuration."""


class ConversionError(SecurityEventExporterError):
    """A single log record could not be turned into a security event."""


class DeliveryError(SecurityEventExporterError):
    """A batch of security events was not delivered."""

    def __init__(self, message: str, *, event_count: int) -> None:
        self.event_count = event_count
        super().__init__(message)


class SerializationError(DeliveryError):
    """The batch could not be encoded as JSON."""


class TransportError(DeliveryError):
    """The endpoint could not be reached (connection failure, timeout)."""


class DeliveryRejectedError(DeliveryError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, *, status_code: int, reason: str, body_preview: str | None, event_count: int) -> None:
        """Create an error capturing the HTTP status and a bounded body preview (if any)."""
        self.status_code = status_code
        self.reason = reason
        self.body_preview = body_preview
        super().__init__(f"HTTP request failed with status: {status_code}", event_count=event_count)
