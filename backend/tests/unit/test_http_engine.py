"""Tests for HTTPEngine."""

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from securescan.scanner.base import validate_target_url
from securescan.scanner.engines import http_engine
from securescan.scanner.engines.http_engine import USER_AGENT, HTTPEngine


class _FakeResponse:
    def __init__(self, status_code=200, headers=None):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})


@pytest.fixture
def captured(monkeypatch):
    calls = []

    def _head(url, **kwargs):
        calls.append((url, kwargs))
        return _FakeResponse(301, {
            "Location": "https://example.com/",
            "X-Frame-Options": "DENY",
            "Strict-Transport-Security": "max-age=100",
        })

    monkeypatch.setattr(http_engine.requests, "head", _head)
    return calls


class TestHTTPEngine:
    def test_single_head_without_redirects(self, captured):
        result = HTTPEngine().run(validate_target_url("http://example.com"), {"timeout": 4})

        assert result.success
        assert len(captured) == 1
        url, kwargs = captured[0]
        assert url == "http://example.com"
        assert kwargs["allow_redirects"] is False
        assert kwargs["verify"] is False
        assert kwargs["timeout"] == 4.0
        assert kwargs["headers"]["User-Agent"] == USER_AGENT

    def test_headers_are_lowercased(self, captured):
        data = HTTPEngine().run(validate_target_url("http://example.com"), {}).data

        assert data["status_code"] == 301
        assert data["headers"]["x-frame-options"] == "DENY"
        assert "X-Frame-Options" not in data["headers"]

    def test_configured_url_wins(self, captured):
        HTTPEngine().run(validate_target_url("https://example.com"), {"url": "http://example.com"})
        assert captured[0][0] == "http://example.com"

    @pytest.mark.parametrize("error,prefix", [
        (requests.Timeout("read timed out"), "Request timeout fetching"),
        (requests.ConnectionError("refused"), "Request to https://example.com failed"),
        (requests.exceptions.SSLError("bad handshake"), "Request to https://example.com failed"),
    ])
    def test_network_errors_fail_the_engine(self, monkeypatch, error, prefix):
        def _head(url, **kwargs):
            raise error

        monkeypatch.setattr(http_engine.requests, "head", _head)

        result = HTTPEngine().run(validate_target_url("https://example.com"), {})

        assert not result.success
        assert result.errors[0].startswith(prefix)
