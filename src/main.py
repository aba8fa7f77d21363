"""CLI entrypoint exporting an OTLP/JSON logs file as security events.

Usage:

    python src/main.py path/to/logs.json [--json-logs] [--verbose]

- Loads exporter configuration from the environment (and `.env`).
- Decodes the file as an OTLP/JSON `ExportLogsServiceRequest`.
- Runs one `consume_logs` invocation, then shuts down and prints the final
  delivery metrics.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import structlog
import typer

from config import load_config
from observability import MetricsSnapshot, configure_logging
from otlp.models import Logs
from securityevent import ConfigurationError, DeliveryError, create_logs_exporter

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="securityevent-export",
    help="Export OTLP/JSON logs as security events.",
    no_args_is_help=True,
)


async def run_export(path: Path) -> MetricsSnapshot:
    """Export a single logs file and return the final metrics."""
    exporter = create_logs_exporter(load_config())
    await exporter.start()
    try:
        logs = Logs.from_otlp_json(json.loads(path.read_text(encoding="utf-8")))
        try:
            await exporter.consume_logs(logs)
        except DeliveryError as exc:
            logger.error("Export failed", error=str(exc), event_count=exc.event_count)
    finally:
        snapshot = await exporter.shutdown()
    return snapshot


@app.command()
def export(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="OTLP/JSON logs file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """Export one logs file and print the final delivery metrics."""
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    try:
        snapshot = asyncio.run(run_export(path))
    except (ConfigurationError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2) from exc

    typer.echo(snapshot.model_dump_json(indent=2))
    if snapshot.events_failed:
        raise typer.Exit(1)


def main() -> None:
    """CLI entrypoint for `python src/main.py`."""
    app()


if __name__ == "__main__":
    main()
