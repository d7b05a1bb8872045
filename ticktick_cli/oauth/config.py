"""
OAuth configuration for the TickTick CLI.

The configuration is built once at process start (usually via
``OAuthConfig.from_env()``) and handed explicitly to the token manager and
exchange client. Two modes are supported:

- Bring-your-own credentials: ``client_secret`` is set and token requests go
  straight to TickTick's token endpoint.
- Shared credentials: ``broker_url`` is set and token requests go through
  the OAuth broker, which holds the confidential secret.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = "http://localhost:8080/callback"
DEFAULT_REFRESH_MARGIN_SECONDS = 60
MIN_REFRESH_MARGIN_SECONDS = 30


@dataclass
class OAuthConfig:
    """
    Configuration for TickTick OAuth 2.0 (Authorization Code + PKCE).

    Attributes:
        client_id: TickTick app client ID
        client_secret: TickTick app client secret (bring-your-own mode)
        broker_url: Base URL of the OAuth broker (shared-credentials mode)
        broker_key: Optional API key sent to the broker as ``x-broker-key``
        redirect_uri: Redirect URI registered for the app
        authorization_url: TickTick OAuth authorization endpoint
        token_url: TickTick OAuth token endpoint
        scope: Space-separated scopes requested at login
        timeout_seconds: Timeout for each token request
        refresh_margin_seconds: Treat tokens as expired this many seconds early
        login_timeout_seconds: How long login waits for the browser redirect
    """

    client_id: str
    client_secret: Optional[str] = None
    broker_url: Optional[str] = None
    broker_key: Optional[str] = None
    redirect_uri: str = DEFAULT_REDIRECT_URI

    # TickTick OAuth endpoints
    authorization_url: str = "https://ticktick.com/oauth/authorize"
    token_url: str = "https://ticktick.com/oauth/token"
    scope: str = "tasks:write tasks:read"

    timeout_seconds: float = 30
    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS
    login_timeout_seconds: int = 120

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.client_id:
            raise ConfigError("client_id cannot be empty")

        # Blank strings from the environment count as absent
        self.client_secret = self.client_secret or None
        self.broker_url = self.broker_url.rstrip("/") if self.broker_url else None
        self.broker_key = self.broker_key or None

        if not self.client_secret and not self.broker_url:
            raise ConfigError(
                "Either a client secret or an OAuth broker URL is required. Set:\n"
                "  TICKTICK_CLIENT_SECRET=your_client_secret\n"
                "or\n"
                "  TICKTICK_OAUTH_BROKER_URL=https://your-broker.example.com"
            )

        if self.client_secret and self.broker_url:
            logger.warning(
                "Both a client secret and a broker URL are configured; "
                "using the client secret and ignoring the broker"
            )

        parsed = urlparse(self.redirect_uri)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigError(
                f"redirect_uri must be an absolute http(s) URL, got {self.redirect_uri!r}"
            )

        if self.timeout_seconds <= 0 or self.login_timeout_seconds <= 0:
            raise ConfigError("timeouts must be positive")

        if self.refresh_margin_seconds < MIN_REFRESH_MARGIN_SECONDS:
            raise ConfigError(
                f"refresh_margin_seconds must be at least {MIN_REFRESH_MARGIN_SECONDS}"
            )

    @property
    def uses_broker(self) -> bool:
        """True when token requests go through the broker (no local secret)."""
        return self.client_secret is None

    @property
    def mode(self) -> str:
        """Human-readable name of the active exchange mode."""
        return "broker" if self.uses_broker else "client-secret"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OAuthConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            TICKTICK_CLIENT_ID: TickTick app client ID
            TICKTICK_CLIENT_SECRET or TICKTICK_OAUTH_BROKER_URL

        Optional environment variables:
            TICKTICK_OAUTH_BROKER_KEY: API key for the broker
            TICKTICK_REDIRECT_URI: Redirect URI (default: http://localhost:8080/callback)
            TICKTICK_HTTP_TIMEOUT: Token request timeout in seconds (default: 30)

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            OAuthConfig instance

        Raises:
            ConfigError: If required environment variables are missing or invalid
        """
        env = os.environ if environ is None else environ

        client_id = env.get("TICKTICK_CLIENT_ID", "").strip()
        if not client_id:
            raise ConfigError(
                "Missing TickTick OAuth client ID. Set environment variable:\n"
                "  TICKTICK_CLIENT_ID=your_client_id\n"
                "\n"
                "Register an app at: https://developer.ticktick.com"
            )

        timeout = env.get("TICKTICK_HTTP_TIMEOUT", "30")
        try:
            timeout_seconds = float(timeout)
        except ValueError as e:
            raise ConfigError(
                f"TICKTICK_HTTP_TIMEOUT must be a number, got {timeout!r}"
            ) from e

        return cls(
            client_id=client_id,
            client_secret=env.get("TICKTICK_CLIENT_SECRET", "").strip() or None,
            broker_url=env.get("TICKTICK_OAUTH_BROKER_URL", "").strip() or None,
            broker_key=env.get("TICKTICK_OAUTH_BROKER_KEY", "").strip() or None,
            redirect_uri=env.get("TICKTICK_REDIRECT_URI", "").strip()
            or DEFAULT_REDIRECT_URI,
            timeout_seconds=timeout_seconds,
        )
