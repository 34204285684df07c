"""Response - Status and body access over one completed HTTP call.

Body policy is buffer-once: the first body access reads the raw stream to
completion and closes it; every later access, through any accessor, sees the
same bytes. Responses returned by Request.execute() are already fully read,
so their connection is released whether or not the body is ever accessed.
"""

from __future__ import annotations

import base64
import json
from typing import Any, TypeVar

import httpx
from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError

from fluent_http.models import ResponseRecord

T = TypeVar("T")


class ResponseError(Exception):
    """Base class for response errors."""


class BodyReadError(ResponseError):
    """Raised when the response body stream cannot be read."""


class SerializationError(ResponseError):
    """Raised when the body does not decode into the requested shape."""


class Response:
    """Wraps an httpx.Response for status and body access.

    Not safe for concurrent use: exactly one thread may read a given
    Response's body.
    """

    def __init__(self, raw: httpx.Response, elapsed_ms: float = 0.0) -> None:
        self._raw = raw
        self._elapsed_ms = elapsed_ms

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}]>"

    @property
    def status_code(self) -> int:
        return self._raw.status_code

    @property
    def headers(self) -> dict[str, list[str]]:
        """Response headers with lowercase keys and array values."""
        headers: dict[str, list[str]] = {}
        for key, value in self._raw.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)
        return headers

    @property
    def elapsed_ms(self) -> float:
        return self._elapsed_ms

    @property
    def http_version(self) -> str:
        return self._raw.http_version

    @property
    def raw(self) -> httpx.Response:
        """The underlying httpx.Response."""
        return self._raw

    def body(self) -> bytes:
        """Return the full body, reading and closing the stream on first call.

        Raises:
            BodyReadError: If the stream fails or was closed before being read.
        """
        try:
            return self._raw.read()
        except (httpx.StreamError, httpx.HTTPError) as e:
            raise BodyReadError(f"failed to read response body: {e}") from e
        finally:
            self._raw.close()

    def text(self) -> str:
        """Return the body decoded with the response's charset (UTF-8 by default)."""
        content = self.body()
        encoding = self._raw.charset_encoding or "utf-8"
        return content.decode(encoding, errors="replace")

    def body_as_map(self) -> dict[str, Any]:
        """Decode the body as a JSON object.

        Raises:
            BodyReadError: If the body cannot be read.
            SerializationError: If the body is not JSON or not a JSON object.
        """
        content = self.body()
        try:
            value = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SerializationError(f"body is not valid JSON: {e}") from e
        if not isinstance(value, dict):
            raise SerializationError(
                f"body is not a JSON object (got {type(value).__name__})"
            )
        return value

    def decode_into(self, target: type[T]) -> T:
        """Decode the JSON body into `target`.

        `target` may be a Pydantic model, a dataclass, a TypedDict, or any
        type Pydantic can validate (e.g. list[int], dict[str, str]).

        Raises:
            BodyReadError: If the body cannot be read.
            SerializationError: If the body is not JSON or does not match
                the target shape, or if Pydantic cannot validate
                `target` at all.
        """
        content = self.body()
        try:
            adapter = TypeAdapter(target)
        except PydanticSchemaGenerationError as e:
            raise SerializationError(f"cannot decode into {target!r}: {e}") from e
        try:
            return adapter.validate_json(content)
        except ValidationError as e:
            raise SerializationError(
                f"body does not decode into {getattr(target, '__name__', target)!s}: {e}"
            ) from e

    def to_record(self) -> ResponseRecord:
        """Convert to a ResponseRecord.

        Parses body based on content-type:
            JSON            -> parsed value
            text/*          -> str
            everything else -> base64
        """
        body: Any = None
        body_base64: str | None = None

        content = self.body()
        content_type = self._raw.headers.get("content-type", "")

        if content:
            if "json" in content_type.lower():
                try:
                    body = json.loads(content)
                except (json.JSONDecodeError, UnicodeDecodeError):
                    # Not valid JSON despite content-type
                    body_base64 = base64.b64encode(content).decode("ascii")
            elif content_type.startswith("text/"):
                body = self.text()
            else:
                body_base64 = base64.b64encode(content).decode("ascii")

        return ResponseRecord(
            status_code=self.status_code,
            headers=self.headers,
            body=body,
            body_base64=body_base64,
            elapsed_ms=self._elapsed_ms,
            http_version=self.http_version,
        )
