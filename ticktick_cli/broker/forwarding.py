"""
Request forwarding for the OAuth broker.

Forwarding is split into pure functions so it can be tested without a
network:

- ``build_exchange_request`` / ``build_refresh_request``:
  (validated request, settings) -> UpstreamRequest with credentials injected
- ``to_outbound_response``: UpstreamResponse -> response returned to the CLI

Only ``post_upstream`` touches the network, and it makes exactly one call.
"""

import hmac
import logging
from base64 import b64encode
from dataclasses import dataclass, field
from typing import Optional

import requests
from fastapi import Response

from .config import BrokerSettings
from .models import ExchangeRequest, RefreshRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamRequest:
    """Form-encoded POST to the provider's token endpoint."""

    url: str
    headers: dict = field(repr=False)
    data: dict = field(repr=False)


@dataclass(frozen=True)
class UpstreamResponse:
    """Provider response, kept byte-for-byte."""

    status_code: int
    body: bytes = field(repr=False)
    content_type: Optional[str] = None


def is_authorized(provided: Optional[str], expected: Optional[str]) -> bool:
    """
    Check the caller's ``x-broker-key`` header.

    Args:
        provided: Header value sent by the caller (None if absent)
        expected: Configured API key (None disables the check)

    Returns:
        True if the request may proceed
    """
    if not expected:
        return True
    if provided is None:
        return False
    return hmac.compare_digest(provided.strip().encode(), expected.encode())


def _credential_headers(settings: BrokerSettings) -> dict:
    credentials = f"{settings.client_id}:{settings.client_secret}"
    return {
        "Authorization": f"Basic {b64encode(credentials.encode()).decode()}",
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }


def build_exchange_request(
    payload: ExchangeRequest, settings: BrokerSettings
) -> UpstreamRequest:
    """Build the authorization_code grant with the confidential credentials injected."""
    return UpstreamRequest(
        url=settings.token_url,
        headers=_credential_headers(settings),
        data={
            "grant_type": "authorization_code",
            "code": payload.code,
            "redirect_uri": payload.redirect_uri,
            "code_verifier": payload.code_verifier,
        },
    )


def build_refresh_request(
    payload: RefreshRequest, settings: BrokerSettings
) -> UpstreamRequest:
    """Build the refresh_token grant with the confidential credentials injected."""
    return UpstreamRequest(
        url=settings.token_url,
        headers=_credential_headers(settings),
        data={
            "grant_type": "refresh_token",
            "refresh_token": payload.refresh_token,
        },
    )


def to_outbound_response(upstream: UpstreamResponse) -> Response:
    """
    Pass the provider's response through unmodified.

    Only ``Cache-Control: no-store`` is added, since the body carries tokens.
    """
    return Response(
        content=upstream.body,
        status_code=upstream.status_code,
        media_type=upstream.content_type or "application/json",
        headers={"Cache-Control": "no-store"},
    )


def post_upstream(upstream: UpstreamRequest, timeout: float) -> UpstreamResponse:
    """
    Send the request to the provider (single attempt, no retry).

    Raises:
        requests.RequestException: Transport failure or timeout
    """
    response = requests.post(
        upstream.url, headers=upstream.headers, data=upstream.data, timeout=timeout
    )
    return UpstreamResponse(
        status_code=response.status_code,
        body=response.content,
        content_type=response.headers.get("Content-Type"),
    )
