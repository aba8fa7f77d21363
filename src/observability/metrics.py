"""Delivery metrics for the security event exporter.

A `DeliveryMetrics` instance is owned by one exporter. Counters only grow and
duration samples only append; concurrent `consume_logs` invocations share the
same collector, so every mutation happens under a lock.
"""

from __future__ import annotations

import threading

from pydantic import BaseModel, ConfigDict


class MetricsSnapshot(BaseModel):
    """Point-in-time copy of the delivery counters."""

    model_config = ConfigDict(frozen=True)

    logs_received: int = 0
    events_exported: int = 0
    events_failed: int = 0
    conversion_errors: int = 0
    http_errors: int = 0
    http_requests: int = 0
    http_durations: tuple[float, ...] = ()

    @property
    def average_http_duration(self) -> float | None:
        """Mean HTTP call duration in seconds, or None without samples."""
        if not self.http_durations:
            return None
        return sum(self.http_durations) / len(self.http_durations)


class DeliveryMetrics:
    """Thread-safe, monotonically increasing delivery counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._logs_received = 0
        self._events_exported = 0
        self._events_failed = 0
        self._conversion_errors = 0
        self._http_errors = 0
        self._http_requests = 0
        self._http_durations: list[float] = []

    @staticmethod
    def _check(count: int) -> None:
        if count < 0:
            raise ValueError(f"metrics counters cannot decrease. Got: {count}")

    def add_logs_received(self, count: int) -> None:
        self._check(count)
        with self._lock:
            self._logs_received += count

    def add_conversion_errors(self, count: int) -> None:
        self._check(count)
        with self._lock:
            self._conversion_errors += count

    def add_events_exported(self, count: int) -> None:
        self._check(count)
        with self._lock:
            self._events_exported += count

    def add_events_failed(self, count: int) -> None:
        self._check(count)
        with self._lock:
            self._events_failed += count

    def record_http_request(self, duration: float, *, failed: bool) -> None:
        """Record one issued HTTP request: its duration and, if it failed, an error."""
        with self._lock:
            self._http_requests += 1
            self._http_durations.append(duration)
            if failed:
                self._http_errors += 1

    def add_http_error(self) -> None:
        """Record a send failure that happened before any request was issued."""
        with self._lock:
            self._http_errors += 1

    def snapshot(self) -> MetricsSnapshot:
        """Return a point-in-time copy of all counters."""
        with self._lock:
            return MetricsSnapshot(
                logs_received=self._logs_received,
                events_exported=self._events_exported,
                events_failed=self._events_failed,
                conversion_errors=self._conversion_errors,
                http_errors=self._http_errors,
                http_requests=self._http_requests,
                http_durations=tuple(self._http_durations),
            )
