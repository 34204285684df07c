"""Pytest configuration and fixtures for fluent-http tests.

This file provides:
- RecordingHandler: httpx.MockTransport handler that records every request
- make_transport / make_raw_response: helpers for building test doubles
- PortReservation / MockServer: subprocess management for the echo server
- Fixtures: a recording handler, an HttpxTransport wired to it, and a live
  mock server for integration tests
"""

from __future__ import annotations

import json
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from fluent_http.transport import HttpxTransport

PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"

TEST_URL = "http://api.test/resource"


class RecordingHandler:
    """Handler for httpx.MockTransport that records requests.

    Every request is read in full and stored in `requests`, along with a copy
    of its body in `bodies`, before the configured reply is returned.

    Usage:
        handler = RecordingHandler(status_code=201, json_body={"id": 1})
        transport = make_transport(handler)
    """

    def __init__(
        self,
        status_code: int = 200,
        json_body: Any = None,
        content: bytes = b"",
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.json_body = json_body
        self.content = content
        self.headers = headers or {}
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(request.read())
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(
                self.status_code, json=self.json_body, headers=self.headers
            )
        return httpx.Response(
            self.status_code, content=self.content, headers=self.headers
        )

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "no request was sent"
        return self.requests[-1]


def make_transport(
    handler: Callable[[httpx.Request], httpx.Response],
    headers: dict[str, str] | None = None,
) -> HttpxTransport:
    """Create an HttpxTransport that routes every request to `handler`."""
    client = httpx.Client(transport=httpx.MockTransport(handler), headers=headers)
    return HttpxTransport(client=client)


def make_raw_response(
    status_code: int = 200,
    content: bytes = b"",
    content_type: str = "",
) -> httpx.Response:
    """Create an httpx.Response as a transport would return it.

    Prefer this over constructing httpx.Response directly - it attaches a
    request, which httpx needs for some properties.
    """
    headers = {"content-type": content_type} if content_type else {}
    return httpx.Response(
        status_code,
        content=content,
        headers=headers,
        request=httpx.Request("GET", TEST_URL),
    )


def make_json_response(body: Any, status_code: int = 200) -> httpx.Response:
    return make_raw_response(
        status_code=status_code,
        content=json.dumps(body).encode("utf-8"),
        content_type="application/json",
    )


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler(json_body={"ok": True})


@pytest.fixture
def transport(handler: RecordingHandler) -> Generator[HttpxTransport, None, None]:
    with make_transport(handler) as t:
        yield t


class PortReservation:
    """Holds a reserved port with the socket kept open until release().

    Another process cannot take the port between allocation and the
    server binding it.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port. Later calls are no-ops."""
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class MockServer:
    """Runs tests/integration/mock_server.py as a subprocess."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.host = "127.0.0.1"
        self.port = reservation.port
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the server subprocess.

        Raises:
            RuntimeError: If the server does not accept connections within 10s.
        """
        self._reservation.release()
        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process.stderr:
                self._process.terminate()
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Terminate the subprocess, killing it after 5s. Safe to call twice."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Echo server subprocess, started once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Mark tests under tests/integration as integration, the rest as unit."""
    for item in items:
        if "integration" in Path(item.fspath).parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
