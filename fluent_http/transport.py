"""Transport - The network round trip behind Request.execute().

A transport takes a fully built httpx.Request and returns an httpx.Response,
or raises an httpx exception. Request.execute() reads and closes whatever
response comes back, streamed or not. Request never talks to the network
itself, so tests can pass any object with a matching send() method (or an
HttpxTransport around an httpx.MockTransport).
"""

from __future__ import annotations

from threading import Lock
from typing import Any, Protocol

import httpx

from fluent_http.models import TransportConfig


class TransportError(Exception):
    """Raised when a transport cannot be configured."""


class Transport(Protocol):
    """Anything that can perform one HTTP round trip."""

    def send(self, request: httpx.Request) -> httpx.Response:
        """Send the request and return the response, streamed or read.

        Raises:
            httpx.HTTPError: On connection, TLS, timeout or read failures.
        """
        ...


class HttpxTransport:
    """Transport backed by an httpx.Client.

    Usage:
        with HttpxTransport(TransportConfig(timeout=10.0)) as transport:
            response = Request(url, HttpMethod.GET, transport=transport).execute()

    Pass `client` to reuse an existing httpx.Client (for example one built
    around httpx.MockTransport). The transport closes the client either way.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._timeout = httpx.Timeout(self._config.timeout)
        if client is None:
            client = httpx.Client(**self._build_client_kwargs(self._config))
        self._client = client

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def config(self) -> TransportConfig:
        return self._config

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def send(self, request: httpx.Request) -> httpx.Response:
        """Send the request, filling in client defaults it does not carry.

        Client headers are only merged by httpx.Client.build_request(), so
        they are added here for any name the request does not already set.
        httpx.Client.send() reads the whole body and closes the stream before
        returning, so the returned response holds no open connection.
        """
        for key, value in self._client.headers.multi_items():
            if key not in request.headers:
                request.headers[key] = value
        if "timeout" not in request.extensions:
            request.extensions["timeout"] = self._timeout.as_dict()
        return self._client.send(request)

    def _build_client_kwargs(self, config: TransportConfig) -> dict[str, Any]:
        """Map a TransportConfig onto httpx.Client kwargs.

        Raises:
            TransportError: If a TLS file named in the config cannot be loaded.
        """
        kwargs: dict[str, Any] = {
            "headers": config.headers,
            "timeout": config.timeout,
            "follow_redirects": config.follow_redirects,
        }
        try:
            ssl_context = config.ssl_context()
        except OSError as e:
            raise TransportError(f"cannot load TLS configuration: {e}") from e
        if ssl_context is not None:
            kwargs["verify"] = ssl_context
        return kwargs


_default_transport: HttpxTransport | None = None
_default_transport_lock = Lock()


def default_transport() -> HttpxTransport:
    """Return the process-wide transport used when none is injected.

    Created on first use with a default TransportConfig.
    """
    global _default_transport
    with _default_transport_lock:
        if _default_transport is None:
            _default_transport = HttpxTransport()
        return _default_transport
