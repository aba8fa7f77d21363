"""Security event logs exporter.

`SecurityEventExporter.consume_logs()` is the per-invocation entry point:

- walk every resource group, scope group and record of one `Logs` bundle
- convert each record into a security event (skipping, counting and logging
  records that fail conversion)
- send everything that converted as one batch, in one POST

An invocation succeeds unless delivery of a non-empty batch fails; conversion
failures alone never fail it. An empty batch makes no HTTP call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from config import ExporterConfig
from observability.metrics import DeliveryMetrics, MetricsSnapshot
from otlp.models import Logs

from .converter import Converted, SecurityEvent, convert_log_record
from .errors import ConfigurationError
from .sender import BatchSender, Failed

logger = structlog.get_logger(__name__)

EXPORTER_TYPE = "securityevent"


@dataclass(frozen=True)
class Capabilities:
    mutates_data: bool = False


def create_default_config() -> ExporterConfig:
    """Return the default exporter configuration."""
    return ExporterConfig()


def create_logs_exporter(
    config: ExporterConfig | Mapping[str, Any],
    *,
    metrics: DeliveryMetrics | None = None,
) -> SecurityEventExporter:
    """Validate `config` and build an exporter.

    Raises:
    - `ConfigurationError` if the configuration is invalid (e.g. empty endpoint).
    """
    logger.info("Creating security event logs exporter")
    try:
        if isinstance(config, ExporterConfig):
            cfg = ExporterConfig.model_validate(config.model_dump())
        else:
            cfg = ExporterConfig.model_validate(dict(config))
    except ValidationError as exc:
        logger.error("Invalid configuration for security event exporter", error=str(exc))
        raise ConfigurationError(f"invalid configuration: {exc}") from exc

    logger.debug(
        "Security event exporter configuration",
        endpoint=cfg.endpoint,
        timeout=cfg.timeout,
        header_count=len(cfg.headers),
        default_attribute_count=len(cfg.default_attributes),
    )
    exporter = SecurityEventExporter(cfg, metrics=metrics)
    logger.info("Successfully created security event logs exporter")
    return exporter


class SecurityEventExporter:
    """Converts inbound log bundles into security events and delivers them in batches."""

    def __init__(self, config: ExporterConfig, *, metrics: DeliveryMetrics | None = None) -> None:
        self.config = config
        self.metrics = metrics if metrics is not None else DeliveryMetrics()
        self.sender = BatchSender(config, self.metrics)

    def capabilities(self) -> Capabilities:
        return Capabilities(mutates_data=False)

    async def start(self) -> None:
        """Log the effective configuration."""
        logger.info(
            "Starting security event exporter",
            endpoint=self.config.endpoint,
            timeout=self.config.timeout,
            header_count=len(self.config.headers),
            default_attribute_count=len(self.config.default_attributes),
        )
        logger.debug(
            "Security event exporter configuration",
            retry_settings=self.config.retry_on_failure.model_dump(),
            queue_settings=self.config.sending_queue.model_dump(),
        )
        logger.debug("Initialized telemetry metrics", **_counters(self.metrics.snapshot()))

    async def shutdown(self) -> MetricsSnapshot:
        """Report the final delivery metrics and return them."""
        logger.info("Shutting down security event exporter")
        snapshot = self.metrics.snapshot()
        logger.info(
            "Final telemetry metrics",
            **_counters(snapshot),
            http_duration_samples=len(snapshot.http_durations),
        )
        if snapshot.average_http_duration is not None:
            logger.info(
                "HTTP request performance metrics",
                average_duration=snapshot.average_http_duration,
                sample_count=len(snapshot.http_durations),
            )
        logger.debug("Security event exporter shutdown completed")
        return snapshot

    async def consume_logs(self, logs: Logs) -> None:
        """Convert and deliver one inbound bundle of logs.

        Raises:
        - a `DeliveryError` subclass if the batch could not be delivered; every
          event of the batch is then counted as failed.
        """
        total_resource_logs = len(logs.resource_logs)
        total_log_records = logs.log_record_count()
        conversion_errors = 0
        batch: list[SecurityEvent] = []

        logger.debug("Processing logs batch", resource_logs_count=total_resource_logs)

        for i, resource_logs in enumerate(logs.resource_logs):
            resource_attrs = resource_logs.resource.attributes
            logger.debug("Processing resource log", resource_index=i, scope_logs_count=len(resource_logs.scope_logs))

            for j, scope_logs in enumerate(resource_logs.scope_logs):
                logger.debug("Processing scope log", scope_index=j, log_records_count=len(scope_logs.log_records))

                for k, record in enumerate(scope_logs.log_records):
                    logger.debug("Processing log record", log_index=k, severity=record.severity_text)

                    result = convert_log_record(record, resource_attrs, self.config.default_attributes)
                    if not isinstance(result, Converted):
                        logger.error(
                            "Failed to convert log to security event",
                            error=result.reason,
                            resource_index=i,
                            scope_index=j,
                            log_index=k,
                            severity=record.severity_text,
                        )
                        conversion_errors += 1
                        continue

                    batch.append(result.event)

        self.metrics.add_logs_received(total_log_records)
        self.metrics.add_conversion_errors(conversion_errors)

        http_requests = 0
        if batch:
            logger.debug("Sending batch of security events", event_count=len(batch))
            http_requests = 1
            try:
                outcome = await self.sender.send(batch)
            except asyncio.CancelledError:
                self.metrics.add_events_failed(len(batch))
                logger.error(
                    "Security event batch delivery cancelled",
                    event_count=len(batch),
                    endpoint=self.config.endpoint,
                )
                raise

            if isinstance(outcome, Failed):
                self.metrics.add_events_failed(len(batch))
                logger.error(
                    "Failed to send security event batch",
                    error=str(outcome.error),
                    event_count=len(batch),
                    endpoint=self.config.endpoint,
                )
                raise outcome.error

            self.metrics.add_events_exported(len(batch))
            logger.debug("Successfully sent security event batch", event_count=len(batch))

        logger.info(
            "Completed processing logs batch",
            total_resource_logs=total_resource_logs,
            total_log_records=total_log_records,
            successful_events=len(batch),
            failed_events=conversion_errors,
            http_requests=http_requests,
        )


def _counters(snapshot: MetricsSnapshot) -> dict[str, int]:
    return {
        "logs_received": snapshot.logs_received,
        "events_exported": snapshot.events_exported,
        "events_failed": snapshot.events_failed,
        "conversion_errors": snapshot.conversion_errors,
        "http_requests": snapshot.http_requests,
        "http_errors": snapshot.http_errors,
    }
