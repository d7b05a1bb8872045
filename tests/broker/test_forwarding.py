"""Tests for broker forwarding functions (no network)."""

import json
from base64 import b64decode
from unittest import mock

import pytest

from ticktick_cli.broker.config import BrokerSettings
from ticktick_cli.broker.forwarding import (
    UpstreamRequest,
    UpstreamResponse,
    build_exchange_request,
    build_refresh_request,
    is_authorized,
    post_upstream,
    to_outbound_response,
)
from ticktick_cli.broker.models import ExchangeRequest, RefreshRequest


@pytest.fixture
def settings():
    """Broker settings with confidential credentials."""
    return BrokerSettings(client_id="cid", client_secret="csecret")


class TestIsAuthorized:
    """Tests for the x-broker-key check."""

    def test_no_key_configured(self):
        """Without a configured key every request passes."""
        assert is_authorized(None, None) is True
        assert is_authorized("anything", "") is True

    def test_matching_key(self):
        """The configured key (surrounding whitespace ignored) passes."""
        assert is_authorized("s3cret", "s3cret") is True
        assert is_authorized(" s3cret ", "s3cret") is True

    def test_missing_or_wrong_key(self):
        """Absent or mismatched keys fail."""
        assert is_authorized(None, "s3cret") is False
        assert is_authorized("", "s3cret") is False
        assert is_authorized("wrong", "s3cret") is False


class TestBuildRequests:
    """Tests for upstream request construction."""

    def test_build_exchange_request(self, settings):
        """Exchange grant carries code, verifier and redirect with Basic auth."""
        payload = ExchangeRequest(
            code=" auth123 ", code_verifier="verif-xyz", redirect_uri="http://localhost:8080/callback"
        )

        upstream = build_exchange_request(payload, settings)

        assert upstream.url == "https://ticktick.com/oauth/token"
        assert upstream.data == {
            "grant_type": "authorization_code",
            "code": "auth123",
            "redirect_uri": "http://localhost:8080/callback",
            "code_verifier": "verif-xyz",
        }
        auth = upstream.headers["Authorization"]
        assert b64decode(auth.split(" ", 1)[1]).decode() == "cid:csecret"
        assert upstream.headers["Content-Type"] == "application/x-www-form-urlencoded"

    def test_build_refresh_request(self, settings):
        """Refresh grant carries only the refresh token in the body."""
        upstream = build_refresh_request(RefreshRequest(refresh_token="R1"), settings)

        assert upstream.data == {"grant_type": "refresh_token", "refresh_token": "R1"}
        assert "csecret" not in json.dumps(upstream.data)

    def test_repr_hides_credentials(self, settings):
        """UpstreamRequest repr never shows headers or body."""
        upstream = build_refresh_request(RefreshRequest(refresh_token="R1"), settings)

        assert "Basic" not in repr(upstream)
        assert "R1" not in repr(upstream)


class TestOutboundResponse:
    """Tests for passing the provider response through."""

    def test_passes_status_and_body_through(self):
        """Status and body are returned unmodified."""
        body = b'{"error":"invalid_grant","error_description":"expired"}'
        response = to_outbound_response(
            UpstreamResponse(status_code=400, body=body, content_type="application/json")
        )

        assert response.status_code == 400
        assert response.body == body
        assert response.headers["cache-control"] == "no-store"

    def test_defaults_content_type(self):
        """A missing upstream content type defaults to JSON."""
        response = to_outbound_response(UpstreamResponse(status_code=200, body=b"{}"))

        assert response.media_type == "application/json"


class TestPostUpstream:
    """Tests for the single network call."""

    @mock.patch("requests.post")
    def test_post_upstream(self, mock_post):
        """post_upstream sends form data with a timeout and captures the response."""
        mock_post.return_value = mock.Mock(
            status_code=200, content=b'{"access_token":"A1"}', headers={"Content-Type": "application/json"}
        )
        request = UpstreamRequest(url="https://token", headers={"h": "v"}, data={"d": "1"})

        result = post_upstream(request, timeout=7)

        mock_post.assert_called_once_with(
            "https://token", headers={"h": "v"}, data={"d": "1"}, timeout=7
        )
        assert result == UpstreamResponse(
            status_code=200, body=b'{"access_token":"A1"}', content_type="application/json"
        )
