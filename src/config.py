"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating required fields and providing actionable error messages.
"""

import json
import math
import os
from typing import Any

import dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_ENDPOINT = "http://localhost:8080/security-events"
DEFAULT_TIMEOUT_SECONDS = 30.0


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_float(name: str, default: float) -> float:
    """Read a float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a float. Got: {raw!r}") from exc


def _get_env_mapping(name: str) -> dict[str, Any]:
    """Read a JSON object env var (empty mapping when unset)."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be a JSON object. Got invalid JSON.") from exc
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a JSON object. Got: {type(value).__name__}")
    return value


class _Settings(BaseModel):
    # Passthrough blocks: shape is validated, behavior is not enforced.
    model_config = ConfigDict(extra="forbid", frozen=True)


class RetrySettings(_Settings):
    """Retry-on-failure settings (accepted and reported, not enforced)."""

    enabled: bool = True
    initial_interval: float = Field(default=5.0, ge=0, description="Seconds before the first retry")
    randomization_factor: float = Field(default=0.5, ge=0)
    multiplier: float = Field(default=1.5, ge=0)
    max_interval: float = Field(default=30.0, ge=0, description="Upper bound for a single backoff (seconds)")
    max_elapsed_time: float = Field(default=300.0, ge=0, description="Give-up horizon (seconds)")


class QueueSettings(_Settings):
    """Sending-queue settings (accepted and reported, not enforced)."""

    enabled: bool = True
    num_consumers: int = Field(default=10, gt=0)
    queue_size: int = Field(default=1000, gt=0)


def _default_attributes() -> dict[str, Any]:
    return {"source": "opentelemetry-collector"}


class ExporterConfig(BaseModel):
    """Configuration for the security event exporter."""

    model_config = ConfigDict(extra="forbid")

    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="HTTP endpoint receiving security event batches")
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, description="HTTP request timeout (seconds)")
    headers: dict[str, SecretStr] = Field(default_factory=dict, description="Extra HTTP headers (opaque values)")
    default_attributes: dict[str, Any] = Field(
        default_factory=_default_attributes,
        description="Attributes merged into every security event",
    )
    retry_on_failure: RetrySettings = Field(default_factory=RetrySettings)
    sending_queue: QueueSettings = Field(default_factory=QueueSettings)

    @field_validator("endpoint")
    def validate_endpoint(cls, v: str) -> str:
        """Validate the endpoint is set (not empty/whitespace)."""
        if not v or not v.strip():
            raise ValueError("endpoint is required")
        return v.strip()

    @field_validator("timeout", mode="before")
    def unset_timeout(cls, v: Any) -> Any:
        """Treat an unset timeout as the default."""
        return DEFAULT_TIMEOUT_SECONDS if v is None else v

    @field_validator("timeout")
    def default_timeout(cls, v: float) -> float:
        """Reject NaN/infinity; fall back to the default timeout when non-positive."""
        if not math.isfinite(v):
            raise ValueError(f"timeout must be a finite number of seconds. Got: {v!r}")
        if v <= 0:
            return DEFAULT_TIMEOUT_SECONDS
        return v

    def header_values(self) -> dict[str, str]:
        """Return the configured headers with their cleartext values (for the wire only)."""
        return {name: value.get_secret_value() for name, value in self.headers.items()}


def load_config() -> ExporterConfig:
    """Load exporter configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or malformed.
    """
    # Load variables from `.env` into the process environment (without overriding
    # already-set env vars).
    dotenv.load_dotenv()

    default_attributes = _get_env_mapping("SECURITY_EVENT_DEFAULT_ATTRIBUTES")
    return ExporterConfig(
        endpoint=_get_required_env("SECURITY_EVENT_ENDPOINT"),
        timeout=_get_env_float("SECURITY_EVENT_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        headers={str(k): str(v) for k, v in _get_env_mapping("SECURITY_EVENT_HEADERS").items()},
        default_attributes=default_attributes or _default_attributes(),
        retry_on_failure=RetrySettings(enabled=_get_env_bool("SECURITY_EVENT_RETRY_ENABLED", True)),
        sending_queue=QueueSettings(enabled=_get_env_bool("SECURITY_EVENT_QUEUE_ENABLED", True)),
    )
