"""Observability primitives for the exporter.

- `DeliveryMetrics`: lock-protected counters and HTTP duration samples owned
  by one exporter instance.
- `configure_logging`: structlog setup shared by the CLI and library users.
"""

from .logging import configure_logging
from .metrics import DeliveryMetrics, MetricsSnapshot

__all__ = [
    "DeliveryMetrics",
    "MetricsSnapshot",
    "configure_logging",
]
