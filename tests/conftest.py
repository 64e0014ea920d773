from __future__ import annotations

import json
import os
import socket
import time
from typing import Any

import jwt
import pytest

os.environ.setdefault("TELEMETRY_ENABLED", "false")

from ai_proxy import AIProxy  # noqa: E402
from gateway import ConnectionGateway  # noqa: E402
from hub import Hub  # noqa: E402

TEST_SECRET = "test-secret"


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError("Network access is disabled during tests.")


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent accidental outbound network calls (AI providers, Redis) in unit tests."""
    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


class FakeWebSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_calls: list[tuple[int, str]] = []
        self.fail_sends = False

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("Cannot call send once a close message has been sent.")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_calls.append((code, reason))

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent]

    def of_type(self, envelope_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["type"] == envelope_type]


class FakeTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def publish_session_event(self, session_id: str, event_type: str) -> bool:
        self.events.append((session_id, event_type))
        return True


def make_token(user_id: str = "u1", user_name: str = "User One", secret: str = TEST_SECRET, **claims: Any) -> str:
    payload: dict[str, Any] = {"userId": user_id, "userName": user_name, "iat": int(time.time())}
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def envelope(envelope_type: str, payload: Any = None, request_id: str | None = None) -> str:
    data: dict[str, Any] = {"type": envelope_type, "payload": payload}
    if request_id is not None:
        data["requestId"] = request_id
    return json.dumps(data)


def tool_call(tool_name: str, arguments: dict[str, Any] | None = None, request_id: str | None = None) -> str:
    return envelope("mcp_tool_call", {"toolName": tool_name, "arguments": arguments or {}}, request_id)


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest.fixture
def hub(telemetry: FakeTelemetry) -> Hub:
    return Hub(telemetry=telemetry, ai_proxy=AIProxy([]), jwt_secret=TEST_SECRET, auth_timeout=5.0)


@pytest.fixture
def connect(hub: Hub):
    """Open an authenticated gateway (optionally already in a project) with an empty outbox."""

    async def _connect(user_id: str, user_name: str | None = None, project: str | None = None):
        ws = FakeWebSocket()
        gateway = ConnectionGateway(hub, ws)
        gateway.start()
        await gateway.handle_text(envelope("authenticate", {"token": make_token(user_id, user_name or user_id.upper())}))
        assert ws.types() == ["auth_success"]
        if project is not None:
            await gateway.handle_text(tool_call("project:join", {"projectId": project}))
        ws.sent.clear()
        return gateway, ws

    return _connect
