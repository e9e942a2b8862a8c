"""Tests for linking and API URL composition."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from cloudcli.auth.urls import (
    account_linking_url,
    api_url,
    build_linking_url,
    join_url,
    with_query,
)
from cloudcli.exceptions import ConfigError, InvalidURLError


class TestJoinUrl:
    @pytest.mark.parametrize(
        ("base", "segments", "expected"),
        [
            ("https://example.com", ("dash", "link"), "https://example.com/dash/link"),
            ("https://example.com/", ("/dash/", "/link"), "https://example.com/dash/link"),
            ("https://example.com/app", ("dash",), "https://example.com/app/dash"),
            ("http://localhost:3000", (), "http://localhost:3000/"),
        ],
    )
    def test_join(self, base: str, segments: tuple[str, ...], expected: str) -> None:
        assert join_url(base, *segments) == expected

    def test_keeps_query(self) -> None:
        assert join_url("https://example.com/x?a=1", "y") == "https://example.com/x/y?a=1"

    @pytest.mark.parametrize(
        "base",
        ["", "example.com", "/relative/path", "ftp://example.com", "https://", "http://[::1"],
    )
    def test_rejects_malformed_base(self, base: str) -> None:
        with pytest.raises(InvalidURLError):
            join_url(base, "dash")

    def test_invalid_url_is_a_config_error(self) -> None:
        with pytest.raises(ConfigError):
            join_url("nope")


def test_api_url() -> None:
    assert api_url("https://api.example.com/v1", "/tokenRequest") == (
        "https://api.example.com/v1/tokenRequest"
    )


def test_account_linking_url() -> None:
    assert account_linking_url("https://web.example.com") == "https://web.example.com/dash/link"


def test_with_query_preserves_existing_params() -> None:
    url = with_query("https://example.com/p?keep=1", code="abc")
    assert parse_qs(urlsplit(url).query) == {"keep": ["1"], "code": ["abc"]}


class TestBuildLinkingUrl:
    def test_redirect_param(self) -> None:
        url = build_linking_url("https://web.example.com", "http://localhost:43210")
        parts = urlsplit(url)

        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://web.example.com/dash/link"
        assert parse_qs(parts.query) == {"redirect": ["http://localhost:43210"]}

    def test_redirect_is_encoded(self) -> None:
        url = build_linking_url("https://web.example.com", "http://localhost:1234")
        assert "redirect=http%3A%2F%2Flocalhost%3A1234" in url

    def test_replaces_existing_redirect(self) -> None:
        url = build_linking_url("https://web.example.com/?redirect=old&env=dev", "http://localhost:1")
        query = parse_qs(urlsplit(url).query)
        assert query == {"redirect": ["http://localhost:1"], "env": ["dev"]}

    def test_malformed_base(self) -> None:
        with pytest.raises(InvalidURLError):
            build_linking_url("not a url", "http://localhost:1")
