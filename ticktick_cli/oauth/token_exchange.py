"""
Token exchange client for TickTick OAuth.

Turns an authorization code (plus PKCE verifier) or a refresh token into a
fresh TokenSet. Depending on the configuration it either calls TickTick's
token endpoint directly with the app's client secret, or delegates to the
OAuth broker, which injects the secret on our behalf.
"""

import logging
import math
from base64 import b64encode
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests

from .config import OAuthConfig
from .exceptions import NetworkError, ProtocolError, TokenExchangeRejected
from .token_storage import TokenSet

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600

EXCHANGE_PATH = "/v1/oauth/exchange"
REFRESH_PATH = "/v1/oauth/refresh"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenExchangeClient:
    """
    Performs authorization-code and refresh-token grants.

    Token requests are never retried here: a rejection from the provider
    (expired code, revoked refresh token) is terminal for the attempt.
    """

    def __init__(
        self, config: OAuthConfig, clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize exchange client.

        Args:
            config: OAuth configuration (decides direct vs. broker mode)
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config
        self._clock = clock or _utcnow

    def exchange(self, code: str, verifier: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the OAuth callback
            verifier: PKCE code verifier matching the challenge sent at login
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            TokenSet with access and refresh tokens

        Raises:
            NetworkError: Transport failure or a 5xx answer
            TokenExchangeRejected: Provider or broker answered 4xx
            ProtocolError: Success response missing required fields
        """
        logger.info(f"Exchanging authorization code for tokens ({self.config.mode} mode)")

        if self.config.uses_broker:
            return self._post_broker(
                EXCHANGE_PATH,
                {
                    "client_id": self.config.client_id,
                    "code": code,
                    "code_verifier": verifier,
                    "redirect_uri": redirect_uri,
                },
            )

        return self._post_provider(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "redirect_uri": redirect_uri,
                "client_id": self.config.client_id,
            }
        )

    def refresh(self, refresh_token: str) -> TokenSet:
        """
        Obtain a new token set using a refresh token.

        The returned TokenSet has an empty ``refresh_token`` if the provider
        did not rotate it; callers keep the previous one in that case.

        Args:
            refresh_token: Current refresh token

        Returns:
            New TokenSet

        Raises:
            NetworkError: Transport failure or a 5xx answer
            TokenExchangeRejected: Provider or broker answered 4xx
            ProtocolError: Success response missing required fields
        """
        logger.info(f"Refreshing access token ({self.config.mode} mode)")

        if self.config.uses_broker:
            return self._post_broker(
                REFRESH_PATH,
                {"client_id": self.config.client_id, "refresh_token": refresh_token},
            )

        return self._post_provider(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
            }
        )

    def _post_provider(self, data: dict) -> TokenSet:
        credentials = f"{self.config.client_id}:{self.config.client_secret}"
        auth_header = b64encode(credentials.encode()).decode()

        return self._send(
            self.config.token_url,
            headers={
                "Authorization": f"Basic {auth_header}",
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            data=data,
        )

    def _post_broker(self, path: str, payload: dict) -> TokenSet:
        headers = {"Accept": "application/json"}
        if self.config.broker_key:
            headers["x-broker-key"] = self.config.broker_key

        return self._send(f"{self.config.broker_url}{path}", headers=headers, json=payload)

    def _send(self, url: str, headers: dict, **body) -> TokenSet:
        # expires_in counts from when the request was sent
        started_at = self._clock()

        try:
            response = requests.post(
                url, headers=headers, timeout=self.config.timeout_seconds, **body
            )
        except requests.Timeout as e:
            logger.error(f"Token request to {url} timed out")
            raise NetworkError(
                f"Token request timed out after {self.config.timeout_seconds}s"
            ) from e
        except requests.RequestException as e:
            logger.error(f"Network error during token request: {type(e).__name__}")
            raise NetworkError(f"Network error during token request to {url}: {e}") from e

        if response.status_code >= 500:
            message = _error_message(response)
            logger.error(f"Token endpoint unavailable: {response.status_code} - {message}")
            raise NetworkError(
                f"Token endpoint unavailable (status {response.status_code})"
                + (f": {message}" if message else "")
            )

        if not 200 <= response.status_code < 300:
            message = _error_message(response)
            logger.error(f"Token request failed: {response.status_code} - {message}")
            raise TokenExchangeRejected(response.status_code, message)

        return _parse_token_response(response, started_at)


def _error_message(response: requests.Response) -> Optional[str]:
    """
    Extract a printable reason from an error response.

    Only the OAuth ``error``/``error_description`` fields (or a broker
    ``detail``) are used; arbitrary bodies are not echoed.
    """
    try:
        body = response.json()
    except ValueError:
        return None

    if not isinstance(body, dict):
        return None

    error = body.get("error")
    description = body.get("error_description") or body.get("detail")
    parts = [str(part) for part in (error, description) if isinstance(part, str) and part]
    return ": ".join(parts) or None


def _parse_token_response(response: requests.Response, started_at: datetime) -> TokenSet:
    try:
        data = response.json()
    except ValueError as e:
        raise ProtocolError("Token endpoint returned a non-JSON response") from e

    if not isinstance(data, dict):
        raise ProtocolError("Token endpoint returned an unexpected JSON document")

    access_token = data.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise ProtocolError("Token response is missing access_token")

    expires_in = data.get("expires_in", DEFAULT_EXPIRES_IN)
    if expires_in is None:
        expires_in = DEFAULT_EXPIRES_IN
    if (
        isinstance(expires_in, bool)
        or not isinstance(expires_in, (int, float))
        or not math.isfinite(expires_in)
        or expires_in < 0
    ):
        raise ProtocolError("Token response has an invalid expires_in")

    refresh_token = data.get("refresh_token") or ""
    if not isinstance(refresh_token, str):
        raise ProtocolError("Token response has an invalid refresh_token")

    try:
        expires_at = started_at + timedelta(seconds=expires_in)
    except (OverflowError, ValueError) as e:
        raise ProtocolError("Token response has an out-of-range expires_in") from e

    return TokenSet(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        token_type=data.get("token_type") or "Bearer",
        scope=data.get("scope") or None,
    )
