"""Tests for the OAuth broker endpoints."""

import requests
from fastapi import status

from ticktick_cli.broker.config import BrokerSettings, get_settings
from ticktick_cli.broker.forwarding import UpstreamResponse
from ticktick_cli.broker.main import app

EXCHANGE_BODY = {
    "code": "auth123",
    "code_verifier": "verif-xyz",
    "redirect_uri": "http://localhost:8080/callback",
}


def test_health_endpoint(client):
    """GET /health reports ok."""
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


class TestExchangeEndpoint:
    """Tests for POST /v1/oauth/exchange."""

    def test_exchange_forwards_and_passes_through(self, client, upstream):
        """A valid request is forwarded once and the provider response returned as-is."""
        response = client.post("/v1/oauth/exchange", json=EXCHANGE_BODY)

        assert response.status_code == status.HTTP_200_OK
        assert response.content == upstream.response.body
        assert response.headers["cache-control"] == "no-store"

        assert len(upstream.calls) == 1
        sent = upstream.calls[0]
        assert sent.data["grant_type"] == "authorization_code"
        assert sent.data["code"] == "auth123"
        assert sent.data["code_verifier"] == "verif-xyz"
        assert sent.headers["Authorization"].startswith("Basic ")

    def test_caller_supplied_credentials_are_ignored(self, client, upstream):
        """client_id/client_secret in the body never reach upstream."""
        body = dict(EXCHANGE_BODY, client_id="evil", client_secret="evil_secret")

        client.post("/v1/oauth/exchange", json=body)

        sent = upstream.calls[0]
        assert "client_secret" not in sent.data
        assert "client_id" not in sent.data
        assert "evil" not in sent.headers["Authorization"]

    def test_upstream_error_status_passes_through(self, client, upstream):
        """Provider rejections keep their status and body."""
        upstream.response = UpstreamResponse(
            status_code=400,
            body=b'{"error":"invalid_grant"}',
            content_type="application/json",
        )

        response = client.post("/v1/oauth/exchange", json=EXCHANGE_BODY)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "invalid_grant"}
        assert len(upstream.calls) == 1

    def test_missing_code_rejected_before_upstream(self, client, upstream):
        """A request without code is a client error and makes no upstream call."""
        body = {k: v for k, v in EXCHANGE_BODY.items() if k != "code"}

        response = client.post("/v1/oauth/exchange", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert upstream.calls == []

    def test_missing_verifier_rejected_before_upstream(self, client, upstream):
        """A request without code_verifier makes no upstream call."""
        body = {k: v for k, v in EXCHANGE_BODY.items() if k != "code_verifier"}

        response = client.post("/v1/oauth/exchange", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert upstream.calls == []

    def test_blank_fields_rejected(self, client, upstream):
        """Whitespace-only values count as missing."""
        response = client.post("/v1/oauth/exchange", json=dict(EXCHANGE_BODY, code="  "))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert upstream.calls == []

    def test_invalid_json_rejected(self, client, upstream):
        """A body that is not JSON is a client error."""
        response = client.post(
            "/v1/oauth/exchange",
            content=b"code=auth123",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.headers["cache-control"] == "no-store"
        assert upstream.calls == []

    def test_upstream_network_failure(self, client, upstream):
        """Transport failures map to 502 without retry."""
        upstream.error = requests.ConnectionError("unreachable")

        response = client.post("/v1/oauth/exchange", json=EXCHANGE_BODY)

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert len(upstream.calls) == 1

    def test_unconfigured_broker(self, client, upstream):
        """Missing broker credentials fail without calling upstream."""
        app.dependency_overrides[get_settings] = lambda: BrokerSettings(
            client_id="", client_secret=""
        )

        response = client.post("/v1/oauth/exchange", json=EXCHANGE_BODY)

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert upstream.calls == []


class TestRefreshEndpoint:
    """Tests for POST /v1/oauth/refresh."""

    def test_refresh_forwards(self, client, upstream):
        """A refresh request is forwarded with the refresh_token grant."""
        response = client.post("/v1/oauth/refresh", json={"refresh_token": "R1"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["access_token"] == "A1"
        assert upstream.calls[0].data == {
            "grant_type": "refresh_token",
            "refresh_token": "R1",
        }

    def test_missing_refresh_token(self, client, upstream):
        """A request without refresh_token is rejected before upstream."""
        response = client.post("/v1/oauth/refresh", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert upstream.calls == []


class TestBrokerKey:
    """Tests for the optional x-broker-key check."""

    def _require_key(self):
        app.dependency_overrides[get_settings] = lambda: BrokerSettings(
            client_id="cid", client_secret="secret", api_key="s3cret"
        )

    def test_missing_key_rejected(self, client, upstream):
        """Requests without the header get 401 and no upstream call."""
        self._require_key()

        response = client.post("/v1/oauth/exchange", json=EXCHANGE_BODY)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert upstream.calls == []

    def test_wrong_key_rejected(self, client, upstream):
        """Requests with a wrong key get 401 and no upstream call."""
        self._require_key()

        response = client.post(
            "/v1/oauth/refresh",
            json={"refresh_token": "R1"},
            headers={"x-broker-key": "wrong"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert upstream.calls == []

    def test_key_checked_before_body(self, client, upstream):
        """An unauthorized request with a bad body still gets 401."""
        self._require_key()

        response = client.post("/v1/oauth/exchange", json={})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_correct_key_accepted(self, client, upstream):
        """Requests with the configured key are forwarded."""
        self._require_key()

        response = client.post(
            "/v1/oauth/exchange", json=EXCHANGE_BODY, headers={"x-broker-key": "s3cret"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert len(upstream.calls) == 1
