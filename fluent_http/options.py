"""Options - Configuration items for the Request constructor.

Each option is a small immutable value whose apply() calls the matching
Request chain method, so these two are equivalent:

    Request(url, HttpMethod.POST, with_json('{"a": 1}'), with_bearer_token("t"))
    Request(url, HttpMethod.POST).with_json('{"a": 1}').with_bearer_token("t")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from fluent_http.context import Context
    from fluent_http.request import Request


class Option:
    """Base class for configuration items."""

    def apply(self, request: Request) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class FormDataOption(Option):
    data: Mapping[str, str] = field(default_factory=dict)

    def apply(self, request: Request) -> None:
        request.with_data(self.data)


@dataclass(frozen=True)
class JsonOption(Option):
    json_str: str = ""

    def apply(self, request: Request) -> None:
        request.with_json(self.json_str)


@dataclass(frozen=True)
class HeadersOption(Option):
    headers: Mapping[str, str] = field(default_factory=dict)

    def apply(self, request: Request) -> None:
        request.with_headers(self.headers)


@dataclass(frozen=True)
class BearerTokenOption(Option):
    token: str = ""

    def apply(self, request: Request) -> None:
        request.with_bearer_token(self.token)


@dataclass(frozen=True)
class ContextOption(Option):
    ctx: Context

    def apply(self, request: Request) -> None:
        request.with_context(self.ctx)


def with_data(data: Mapping[str, str]) -> Option:
    """Form-encode `data` as the request body."""
    return FormDataOption(dict(data))


def with_json(json_str: str) -> Option:
    """Send `json_str` verbatim as an application/json body."""
    return JsonOption(json_str)


def with_headers(headers: Mapping[str, str]) -> Option:
    """Merge `headers` into the request headers; later values win."""
    return HeadersOption(dict(headers))


def with_bearer_token(token: str) -> Option:
    """Set `Authorization: Bearer <token>`."""
    return BearerTokenOption(token)


def with_context(ctx: Context) -> Option:
    """Bind execution to `ctx`'s deadline and cancellation."""
    return ContextOption(ctx)
