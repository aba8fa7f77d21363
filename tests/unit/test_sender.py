from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
import requests
from structlog.testing import capture_logs

from config import ExporterConfig
from observability.metrics import DeliveryMetrics
from securityevent.errors import DeliveryRejectedError, SerializationError, TransportError
from securityevent.sender import BatchSender, Failed, Sent, is_sensitive_header, serialize_batch


class _FakeResponse:
    def __init__(self, *, status_code: int, reason: str = "", content: bytes = b"") -> None:
        self.status_code = status_code
        self.reason = reason
        self.content = content
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def close(self) -> None:
        self.closed = True


def _make_config(**overrides: Any) -> ExporterConfig:
    fields: dict[str, Any] = {"endpoint": "https://siem.example.com/ingest", "timeout": 5.0}
    fields.update(overrides)
    return ExporterConfig(**fields)


def _events(n: int) -> list[dict[str, Any]]:
    return [{"source": "test", "severity_number": 9, "flag": True, "message": f"event {i}"} for i in range(n)]


@pytest.mark.asyncio
async def test_send_posts_json_array_with_headers(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    response = _FakeResponse(status_code=202, reason="Accepted")

    def fake_post(url: str, *, data: bytes, headers: dict[str, str], timeout: float, stream: bool) -> _FakeResponse:
        calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout, "stream": stream})
        return response

    monkeypatch.setattr("securityevent.sender.requests.post", fake_post)

    metrics = DeliveryMetrics()
    sender = BatchSender(_make_config(headers={"X-Tenant": "t1", "Authorization": "Bearer s3cr3t"}), metrics)
    result = await sender.send(_events(3))

    assert isinstance(result, Sent)
    assert result.status_code == 202
    assert len(calls) == 1
    call = calls[0]
    assert call["url"] == "https://siem.example.com/ingest"
    assert call["timeout"] == 5.0
    assert call["headers"] == {
        "Content-Type": "application/json",
        "X-Tenant": "t1",
        "Authorization": "Bearer s3cr3t",
    }
    decoded = json.loads(call["data"])
    assert isinstance(decoded, list)
    assert decoded == _events(3)
    assert response.closed

    snapshot = metrics.snapshot()
    assert snapshot.http_requests == 1
    assert snapshot.http_errors == 0
    assert len(snapshot.http_durations) == 1


@pytest.mark.asyncio
async def test_non_2xx_is_rejected_with_bounded_body_preview(monkeypatch: pytest.MonkeyPatch) -> None:
    body = b"E" * 2000

    def fake_post(url: str, **kwargs: Any) -> _FakeResponse:
        return _FakeResponse(status_code=503, reason="Service Unavailable", content=body)

    monkeypatch.setattr("securityevent.sender.requests.post", fake_post)

    metrics = DeliveryMetrics()
    sender = BatchSender(_make_config(), metrics)
    with capture_logs() as logs:
        result = await sender.send(_events(4))

    assert isinstance(result, Failed)
    assert isinstance(result.error, DeliveryRejectedError)
    assert result.error.status_code == 503
    assert result.error.event_count == 4
    assert result.error.body_preview == "E" * 500 + "..."

    body_logs = [entry for entry in logs if entry["event"] == "HTTP error response body for batch"]
    assert len(body_logs) == 1
    assert len(body_logs[0]["response_body"]) == 503

    snapshot = metrics.snapshot()
    assert snapshot.http_requests == 1
    assert snapshot.http_errors == 1
    assert len(snapshot.http_durations) == 1


@pytest.mark.asyncio
async def test_non_2xx_with_unreadable_body_is_still_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BrokenBody(_FakeResponse):
        def iter_content(self, chunk_size: int = 1):
            raise requests.exceptions.ChunkedEncodingError("connection reset")

    monkeypatch.setattr(
        "securityevent.sender.requests.post",
        lambda url, **kwargs: _BrokenBody(status_code=400, reason="Bad Request"),
    )

    sender = BatchSender(_make_config(), DeliveryMetrics())
    result = await sender.send(_events(1))

    assert isinstance(result, Failed)
    assert isinstance(result.error, DeliveryRejectedError)
    assert result.error.status_code == 400
    assert result.error.body_preview is None


@pytest.mark.parametrize("status_code", [200, 201, 204, 299])
@pytest.mark.asyncio
async def test_any_2xx_is_success(monkeypatch: pytest.MonkeyPatch, status_code: int) -> None:
    monkeypatch.setattr(
        "securityevent.sender.requests.post",
        lambda url, **kwargs: _FakeResponse(status_code=status_code),
    )

    result = await BatchSender(_make_config(), DeliveryMetrics()).send(_events(2))
    assert isinstance(result, Sent)


@pytest.mark.parametrize(
    "exc",
    [
        requests.ConnectionError("connection refused"),
        requests.Timeout("read timed out"),
        UnicodeEncodeError("latin-1", "ok \u2713", 3, 4, "ordinal not in range(256)"),
        ValueError("Invalid timeout value: nan"),
    ],
)
@pytest.mark.asyncio
async def test_transport_failure(monkeypatch: pytest.MonkeyPatch, exc: Exception) -> None:
    def fake_post(url: str, **kwargs: Any) -> _FakeResponse:
        raise exc

    monkeypatch.setattr("securityevent.sender.requests.post", fake_post)

    metrics = DeliveryMetrics()
    result = await BatchSender(_make_config(), metrics).send(_events(5))

    assert isinstance(result, Failed)
    assert isinstance(result.error, TransportError)
    assert result.error.event_count == 5
    assert result.error.__cause__ is exc

    snapshot = metrics.snapshot()
    assert snapshot.http_requests == 1
    assert snapshot.http_errors == 1
    assert len(snapshot.http_durations) == 1


@pytest.mark.asyncio
async def test_serialization_failure_makes_no_request(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    def fake_post(url: str, **kwargs: Any) -> _FakeResponse:
        nonlocal calls
        calls += 1
        return _FakeResponse(status_code=200)

    monkeypatch.setattr("securityevent.sender.requests.post", fake_post)

    metrics = DeliveryMetrics()
    result = await BatchSender(_make_config(), metrics).send([{"score": float("nan")}, {"ok": 1}])

    assert isinstance(result, Failed)
    assert isinstance(result.error, SerializationError)
    assert result.error.event_count == 2
    assert calls == 0

    snapshot = metrics.snapshot()
    assert snapshot.http_errors == 1
    assert snapshot.http_requests == 0
    assert snapshot.http_durations == ()


@pytest.mark.asyncio
async def test_header_values_are_never_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "securityevent.sender.requests.post",
        lambda url, **kwargs: _FakeResponse(status_code=200),
    )

    cfg = _make_config(headers={"Authorization": "Bearer s3cr3t", "X-Tenant": "tenant-value"})
    with capture_logs() as logs:
        await BatchSender(cfg, DeliveryMetrics()).send(_events(1))

    header_logs = {entry["header_name"]: entry["is_sensitive"] for entry in logs if entry["event"] == "Added custom header"}
    assert header_logs == {"Authorization": True, "X-Tenant": False}
    assert not any("s3cr3t" in str(entry) or "tenant-value" in str(entry) for entry in logs)


@pytest.mark.asyncio
async def test_cancelled_send_is_recorded_as_failed_request(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _hang(func, /, *args, **kwargs):  # noqa: ANN001
        await asyncio.Event().wait()

    monkeypatch.setattr("securityevent.sender.asyncio.to_thread", _hang)

    metrics = DeliveryMetrics()
    sender = BatchSender(_make_config(), metrics)
    with pytest.raises(TimeoutError):
        await asyncio.wait_for(sender.send(_events(2)), timeout=0.01)

    snapshot = metrics.snapshot()
    assert snapshot.http_requests == 1
    assert snapshot.http_errors == 1
    assert len(snapshot.http_durations) == 1


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Authorization", True),
        ("Proxy-Authorization", True),
        ("Cookie", True),
        ("Set-Cookie", True),
        ("X-API-Key", True),
        ("x-auth-token", True),
        ("Content-Type", False),
        ("X-Tenant", False),
    ],
)
def test_is_sensitive_header(name: str, expected: bool) -> None:
    assert is_sensitive_header(name) is expected


def test_serialize_batch_round_trip_keeps_key_sets() -> None:
    events = [
        {"a": "x", "n": 1},
        {"b": True, "c": 2.5, "d": None},
        {"message": "ünïcode"},
    ]
    decoded = json.loads(serialize_batch(events))

    assert len(decoded) == len(events)
    assert [set(obj) for obj in decoded] == [set(ev) for ev in events]


def test_serialize_batch_rejects_unencodable_values() -> None:
    with pytest.raises(SerializationError):
        serialize_batch([{"obj": object()}])
