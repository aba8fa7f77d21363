"""Security event exporter: log records in, batched JSON events out over HTTP."""

from .converter import Converted, SecurityEvent, Skipped, as_string, convert_log_record
from .errors import (
    ConfigurationError,
    ConversionError,
    DeliveryError,
    DeliveryRejectedError,
    SecurityEventExporterError,
    SerializationError,
    TransportError,
)
from .exporter import (
    EXPORTER_TYPE,
    Capabilities,
    SecurityEventExporter,
    create_default_config,
    create_logs_exporter,
)
from .sender import BatchSender, Failed, Sent, is_sensitive_header, serialize_batch

__all__ = [
    "EXPORTER_TYPE",
    "BatchSender",
    "Capabilities",
    "ConfigurationError",
    "ConversionError",
    "Converted",
    "DeliveryError",
    "DeliveryRejectedError",
    "Failed",
    "SecurityEvent",
    "SecurityEventExporter",
    "SecurityEventExporterError",
    "Sent",
    "SerializationError",
    "Skipped",
    "TransportError",
    "as_string",
    "convert_log_record",
    "create_default_config",
    "create_logs_exporter",
    "is_sensitive_header",
    "serialize_batch",
]
