"""Tests for constructor configuration items."""

from dataclasses import FrozenInstanceError
from unittest.mock import MagicMock

import pytest

from fluent_http.context import background
from fluent_http.options import (
    BearerTokenOption,
    ContextOption,
    FormDataOption,
    HeadersOption,
    JsonOption,
    Option,
    with_bearer_token,
    with_context,
    with_data,
    with_headers,
    with_json,
)


class TestFactories:
    def test_factories_build_options(self) -> None:
        ctx = background()
        assert with_data({"a": "1"}) == FormDataOption({"a": "1"})
        assert with_json("{}") == JsonOption("{}")
        assert with_headers({"X": "1"}) == HeadersOption({"X": "1"})
        assert with_bearer_token("t") == BearerTokenOption("t")
        assert with_context(ctx) == ContextOption(ctx)

    def test_mapping_copied(self) -> None:
        headers = {"X": "1"}
        option = with_headers(headers)
        headers["X"] = "2"
        assert option == HeadersOption({"X": "1"})

    def test_options_immutable(self) -> None:
        option = with_bearer_token("t")
        with pytest.raises(FrozenInstanceError):
            option.token = "other"  # type: ignore[misc]

    def test_base_option_not_applicable(self) -> None:
        with pytest.raises(NotImplementedError):
            Option().apply(MagicMock())


class TestApply:
    """Each option forwards to exactly one chain method."""

    @pytest.mark.parametrize(
        ("option", "method", "arg"),
        [
            (with_data({"a": "1"}), "with_data", {"a": "1"}),
            (with_json('{"a": 1}'), "with_json", '{"a": 1}'),
            (with_headers({"X": "1"}), "with_headers", {"X": "1"}),
            (with_bearer_token("tok"), "with_bearer_token", "tok"),
        ],
    )
    def test_apply_forwards(self, option: Option, method: str, arg: object) -> None:
        request = MagicMock()
        option.apply(request)
        getattr(request, method).assert_called_once_with(arg)

    def test_context_apply_forwards(self) -> None:
        ctx = background()
        request = MagicMock()
        with_context(ctx).apply(request)
        request.with_context.assert_called_once_with(ctx)
