"""
Shared pytest fixtures for nodeagent tests.

This module provides common fixtures including:
- ScriptMocker: Mock script processes with canned stdout and exit codes
- RecordingTransport: Capture every frame the reporter sends
- FakeWebSocket / FakeConnector: Drive the connection lifecycle without a server
"""

import asyncio
import os
import shlex
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nodeagent.config.provider import AgentConfig
from nodeagent.modules.reporter import ResultReporter

AGENT_ID = "agent-test-host"


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Script Process Mocking Infrastructure
# =============================================================================

@dataclass
class ScriptResponse:
    """Represents a mocked script run."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    spawn_error: Optional[Exception] = None


@dataclass
class ScriptCall:
    """Record of a script spawn made during testing."""
    command_line: str
    argv: List[str]
    cwd: Optional[str]
    stdin: Optional[bytes] = None


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process."""

    def __init__(self, response: ScriptResponse, call: ScriptCall):
        self._response = response
        self._call = call
        self.returncode: Optional[int] = None

    async def communicate(self, input: Optional[bytes] = None):
        self._call.stdin = input
        await asyncio.sleep(0)
        self.returncode = self._response.returncode
        return self._response.stdout.encode("utf-8"), self._response.stderr.encode("utf-8")


class ScriptMocker:
    """
    Mock script processes by script name.

    Usage:
        def test_something(script_mocker):
            script_mocker.register("status.sh", ScriptResponse(stdout="ok\\n"))
            # Run code that spawns ./status.sh
            assert script_mocker.was_called_with("status.sh")
    """

    def __init__(self):
        self._responses: Dict[str, ScriptResponse] = {}
        self._call_history: List[ScriptCall] = []
        self._default_response = ScriptResponse(
            stderr="sh: 1: not found",
            returncode=127
        )

    def register(self, script: str, response: ScriptResponse) -> "ScriptMocker":
        """Register the response for a script name."""
        self._responses[script] = response
        return self

    async def create_subprocess_shell(self, cmd: str, **kwargs) -> FakeProcess:
        """Mock implementation of asyncio.create_subprocess_shell."""
        argv = shlex.split(cmd)
        script = argv[0][2:] if argv[0].startswith("./") else argv[0]
        call = ScriptCall(command_line=cmd, argv=argv, cwd=kwargs.get("cwd"))
        self._call_history.append(call)

        response = self._responses.get(script, self._default_response)
        if response.spawn_error is not None:
            raise response.spawn_error
        return FakeProcess(response, call)

    @property
    def calls(self) -> List[ScriptCall]:
        return self._call_history

    def was_called_with(self, script: str) -> bool:
        return any(call.argv[0] == f"./{script}" for call in self._call_history)


@pytest.fixture
def script_mocker():
    """Fixture that provides a ScriptMocker with asyncio.create_subprocess_shell patched."""
    mocker = ScriptMocker()
    with patch("asyncio.create_subprocess_shell", new=mocker.create_subprocess_shell):
        yield mocker


# =============================================================================
# Transport Fakes
# =============================================================================

class RecordingTransport:
    """Transport that records frames instead of writing them to a socket."""

    def __init__(self, is_open: bool = True):
        self.is_open = is_open
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, message: Dict[str, Any]) -> bool:
        self.sent.append(message)
        return True

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [message["payload"] for message in self.sent]

    def payloads_of_type(self, type_: str) -> List[Dict[str, Any]]:
        return [p for p in self.payloads if p.get("type") == type_]


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def reporter(transport):
    return ResultReporter(transport, AGENT_ID)


_CLOSE = object()


class FakeWebSocket:
    """In-memory WebSocket connection fed by the test."""

    def __init__(self, url: str):
        self.url = url
        self.sent: List[str] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.closed = False
        self.send_error: Optional[Exception] = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    def feed(self, message) -> None:
        """Deliver an inbound frame."""
        self._incoming.put_nowait(message)

    def fail(self, error: Exception) -> None:
        """Make the next receive raise a transport error."""
        self._incoming.put_nowait(error)

    def server_close(self, code: int, reason: str = "") -> None:
        """Simulate the server closing the connection."""
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSE)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.server_close(code, reason)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnector:
    """Replacement for websockets' connect(); records every attempt."""

    def __init__(self):
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self.failures_left = 0

    async def __call__(self, url: str, **kwargs) -> FakeWebSocket:
        self.urls.append(url)
        if self.failures_left > 0:
            self.failures_left -= 1
            raise ConnectionRefusedError(111, "Connection refused")
        ws = FakeWebSocket(url)
        self.sockets.append(ws)
        return ws

    @property
    def attempts(self) -> int:
        return len(self.urls)

    @property
    def current(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def agent_config(tmp_path):
    """Agent configuration with short timers for lifecycle tests."""
    return AgentConfig(
        server_url="wss://control.example.com/ws",
        agent_id=AGENT_ID,
        access_code="ACCESS-123",
        fingerprint_hash="f" * 64,
        heartbeat_interval=0.05,
        reconnect_interval=0.05,
        scripts_dir=str(tmp_path),
    )


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "script_mock: Tests using mocked script processes"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests running real shell scripts"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
