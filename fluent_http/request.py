"""Request - Builds and executes one outbound HTTP call.

A Request accumulates configuration (body, headers, bearer auth, context)
either through options passed to the constructor or through chain methods,
then sends it through a Transport with execute().

Usage:
    response = (
        Request("https://api.example.com/items", HttpMethod.POST)
        .with_json('{"name": "widget"}')
        .with_bearer_token(token)
        .execute()
    )
    if response.status_code == 201:
        item = response.body_as_map()

Header handling:
    Body mutators write Content-Type straight into the request headers.
    with_headers() and with_bearer_token() stage their headers, which are
    applied on top at execute() time; a staged header replaces an immediate
    one with the same (case-insensitive) name.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from fluent_http.context import Context
from fluent_http.models import HttpMethod, RequestRecord
from fluent_http.options import Option
from fluent_http.response import Response
from fluent_http.transport import Transport, default_transport

logger = logging.getLogger(__name__)

FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"
JSON_MEDIA_TYPE = "application/json"


class RequestError(Exception):
    """Base class for request errors."""


class ConstructionError(RequestError):
    """Raised when a request cannot be built (bad URL, method or header)."""


class ExecutionError(RequestError):
    """Raised when a request fails (connection error, timeout, cancellation, etc.)."""


def _parse_method(method: HttpMethod | str) -> HttpMethod:
    try:
        if isinstance(method, str):
            method = method.upper()
        return HttpMethod(method)
    except ValueError as e:
        raise ConstructionError(
            f"failed to create http request: unsupported method {method!r}"
        ) from e


def _parse_url(target_url: str) -> httpx.URL:
    """Parse an absolute http(s) URL.

    Raises:
        ConstructionError: If the URL is malformed, has a non-HTTP scheme,
            or has no host.
    """
    try:
        url = httpx.URL(target_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ConstructionError(f"failed to create http request: {e}") from e

    if url.scheme not in ("http", "https"):
        raise ConstructionError(
            f"failed to create http request: unsupported protocol scheme {url.scheme!r} "
            f"in {target_url!r}"
        )
    if not url.host:
        raise ConstructionError(f"failed to create http request: no host in {target_url!r}")
    return url


class Request:
    """One pending HTTP call.

    Not safe for concurrent use: configure and execute a Request from a
    single thread. Use separate Request instances for parallel calls.
    """

    def __init__(
        self,
        target_url: str,
        method: HttpMethod | str,
        *options: Option,
        transport: Transport | None = None,
    ) -> None:
        """Create a request and apply `options` in order.

        Args:
            target_url: Absolute http:// or https:// URL.
            method: One of GET, POST, PUT, PATCH, DELETE.
            *options: Configuration items from fluent_http.options.
            transport: Transport used by execute(). Defaults to the shared
                process-wide transport.

        Raises:
            ConstructionError: If the URL or method is invalid.
        """
        self._method = _parse_method(method)
        self._url = _parse_url(target_url)
        self._transport = transport

        # Written directly by body mutators
        self._transport_headers = httpx.Headers()
        # Staged by with_headers()/with_bearer_token(), applied in execute()
        self._headers: dict[str, str] = {}
        self._content: bytes | None = None
        self._context: Context | None = None

        for option in options:
            option.apply(self)

    def __repr__(self) -> str:
        return f"<Request [{self._method.value} {self._url}]>"

    @property
    def method(self) -> HttpMethod:
        return self._method

    @property
    def url(self) -> str:
        return str(self._url)

    @property
    def content(self) -> bytes | None:
        """Body bytes, or None if no body mutator has been applied."""
        return self._content

    @property
    def context(self) -> Context | None:
        return self._context

    @property
    def headers(self) -> dict[str, str]:
        """Headers as they will be sent, with lowercase keys.

        Transport-level defaults (User-Agent, Host, Content-Length) are not
        included.
        """
        return dict(self._effective_headers().items())

    def with_data(self, data: Mapping[str, str]) -> Request:
        """Replace the body with `data` form-encoded and set Content-Type."""
        self._content = urlencode(sorted(data.items())).encode("ascii")
        self._transport_headers["Content-Type"] = FORM_MEDIA_TYPE
        return self

    def with_json(self, json_str: str) -> Request:
        """Replace the body with `json_str` and set Content-Type to JSON.

        The string is sent verbatim; it is not parsed or validated.
        """
        self._content = json_str.encode("utf-8")
        self._transport_headers["Content-Type"] = JSON_MEDIA_TYPE
        return self

    def with_headers(self, headers: Mapping[str, str]) -> Request:
        """Merge `headers` into the staged headers; newer values win.

        Raises:
            ConstructionError: If a name or value is not ASCII.
        """
        for key, value in headers.items():
            self.add_header(key, value)
        return self

    def with_bearer_token(self, token: str) -> Request:
        """Stage `Authorization: Bearer <token>`, replacing any earlier token."""
        self.add_header("Authorization", f"Bearer {token}")
        return self

    def with_context(self, ctx: Context) -> Request:
        """Bind execute() to the deadline and cancellation of `ctx`."""
        self._context = ctx
        return self

    def add_header(self, key: str, value: str) -> None:
        """Stage a single header for execute().

        Names are case-insensitive: an earlier header whose name differs
        only in case is replaced.

        Raises:
            ConstructionError: If the name or value is not ASCII.
        """
        try:
            key.encode("ascii")
            value.encode("ascii")
        except UnicodeEncodeError as e:
            raise ConstructionError(
                f"failed to create http request: header {key!r} is not ASCII: {e}"
            ) from e

        for existing in [k for k in self._headers if k.lower() == key.lower()]:
            del self._headers[existing]
        self._headers[key] = value

    def describe(self) -> RequestRecord:
        """Return a RequestRecord of what execute() would send."""
        body: str | None = None
        body_base64: str | None = None
        if self._content is not None:
            try:
                body = self._content.decode("utf-8")
            except UnicodeDecodeError:
                body_base64 = base64.b64encode(self._content).decode("ascii")

        headers = self.headers
        return RequestRecord(
            method=self._method,
            url=self.url,
            headers=headers,
            body=body,
            body_base64=body_base64,
            media_type=headers.get("content-type"),
        )

    def execute(self) -> Response:
        """Send the request and wrap the result.

        Every HTTP status, including 4xx and 5xx, produces a Response; check
        status_code explicitly. The body is sent again in full if execute()
        is called more than once.

        Returns:
            Response with its body already read.

        Raises:
            ExecutionError: On connection, TLS, timeout or read failures, or
                if the context is canceled or past its deadline. The cause is
                chained as __cause__.
        """
        ctx = self._context
        if ctx is not None:
            ctx_err = ctx.err()
            if ctx_err is not None:
                raise self._execution_error(ctx_err) from ctx_err

        http_request = self._build_transport_request()
        transport = self._transport or default_transport()

        logger.debug("Request: %s %s", self._method.value, self._url)
        start_time = time.perf_counter()
        try:
            http_response = transport.send(http_request)
            try:
                # Release the stream before returning, even if the body is never accessed
                http_response.read()
            finally:
                http_response.close()
        except (httpx.HTTPError, httpx.StreamError) as e:
            # A timeout past the context deadline is reported as the deadline
            cause: Exception = e
            if ctx is not None:
                cause = ctx.err() or e
            raise self._execution_error(cause) from cause
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        if ctx is not None:
            ctx_err = ctx.err()
            if ctx_err is not None:
                raise self._execution_error(ctx_err) from ctx_err

        logger.debug(
            "Response: %s %s -> %d (%.1fms)",
            self._method.value,
            self._url,
            http_response.status_code,
            elapsed_ms,
        )
        return Response(http_response, elapsed_ms=elapsed_ms)

    def _effective_headers(self) -> httpx.Headers:
        headers = httpx.Headers(self._transport_headers)
        for key, value in self._headers.items():
            headers[key] = value
        return headers

    def _build_transport_request(self) -> httpx.Request:
        """Build a fresh httpx.Request from the accumulated configuration."""
        extensions: dict[str, Any] = {}
        if self._context is not None:
            remaining = self._context.remaining()
            if remaining is not None:
                extensions["timeout"] = httpx.Timeout(remaining).as_dict()

        return httpx.Request(
            self._method.value,
            self._url,
            headers=self._effective_headers(),
            content=self._content,
            extensions=extensions,
        )

    def _execution_error(self, cause: BaseException) -> ExecutionError:
        message = f"failed to do http request: {self._method.value} {self._url}: {cause}"
        logger.warning(message)
        return ExecutionError(message)
