"""
Token manager for the TickTick CLI.

This module manages the OAuth token lifecycle including:
- Interactive login (PKCE challenge -> browser authorization -> code exchange)
- Providing a valid access token to command logic
- Refreshing the access token shortly before it expires
- Local logout and status reporting

State machine::

    UNAUTHENTICATED --login()--> AUTHENTICATED_VALID
    AUTHENTICATED_VALID --time passes--> AUTHENTICATED_EXPIRED
    AUTHENTICATED_EXPIRED --refresh ok--> AUTHENTICATED_VALID
    AUTHENTICATED_EXPIRED --refresh rejected--> UNAUTHENTICATED (store cleared)
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlencode

from .auth_server import run_authorization_flow
from .config import DEFAULT_REFRESH_MARGIN_SECONDS, OAuthConfig
from .exceptions import NotAuthenticated, ReauthRequired, TokenExchangeRejected
from .pkce import PKCEChallenge, new_challenge, new_state
from .token_exchange import TokenExchangeClient
from .token_storage import CredentialStore, StoredAppConfig, TokenSet

logger = logging.getLogger(__name__)

# (auth_url, redirect_uri, state, open_browser, timeout) -> authorization code
Authorizer = Callable[..., str]


class AuthState(str, Enum):
    """Authentication state derived from the stored credentials."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_VALID = "authenticated_valid"
    AUTHENTICATED_EXPIRED = "authenticated_expired"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def credential_status(
    store: CredentialStore,
    refresh_margin_seconds: int = DEFAULT_REFRESH_MARGIN_SECONDS,
    now: Optional[datetime] = None,
) -> dict:
    """
    Describe the stored credentials without needing an OAuth configuration.

    Token values are never included.

    Raises:
        StoreCorrupt: If the credential file cannot be parsed
    """
    now = now or _utcnow()
    token, _ = store.load()
    status = {"credentials_path": str(store.path)}

    if token is None:
        status.update({"authenticated": False, "message": "No tokens stored"})
        return status

    expires_in = (token.expires_at - now).total_seconds()
    status.update(
        {
            "authenticated": True,
            "expired": token.expires_within(refresh_margin_seconds, now=now),
            "expires_at": token.expires_at.isoformat(),
            "expires_in_seconds": max(0, int(expires_in)),
            "scope": token.scope,
        }
    )
    return status


class TokenManager:
    """
    Manages the OAuth token lifecycle.

    Responsibilities:
    - Drive the login flow and persist the resulting tokens
    - Hand out valid access tokens, refreshing when needed
    - Clear credentials when the refresh token is no longer accepted
    """

    def __init__(
        self,
        config: OAuthConfig,
        store: Optional[CredentialStore] = None,
        exchange_client: Optional[TokenExchangeClient] = None,
        authorize: Optional[Authorizer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize token manager.

        Args:
            config: OAuth configuration
            store: Credential store (creates default if not provided)
            exchange_client: Token exchange client (creates default if not provided)
            authorize: Interactive authorization step (defaults to the local
                callback server flow)
            clock: Returns the current UTC time (injectable for tests)
        """
        self.config = config
        self.store = store or CredentialStore()
        self._clock = clock or _utcnow
        self.exchange_client = exchange_client or TokenExchangeClient(
            config, clock=self._clock
        )
        self._authorize = authorize or run_authorization_flow

    @property
    def state(self) -> AuthState:
        """Current authentication state (reads the credential store)."""
        token, _ = self.store.load()
        if token is None:
            return AuthState.UNAUTHENTICATED
        if self._needs_refresh(token):
            return AuthState.AUTHENTICATED_EXPIRED
        return AuthState.AUTHENTICATED_VALID

    def build_authorization_url(self, challenge: PKCEChallenge, state: str) -> str:
        """
        Build the TickTick authorization URL for a login attempt.

        Args:
            challenge: PKCE challenge for this attempt
            state: CSRF state value

        Returns:
            Complete authorization URL with query parameters
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            "state": state,
            "code_challenge": challenge.challenge,
            "code_challenge_method": challenge.method,
        }
        return f"{self.config.authorization_url}?{urlencode(params)}"

    def login(self, open_browser: bool = True) -> TokenSet:
        """
        Run the interactive login flow and store the resulting tokens.

        Args:
            open_browser: Whether to open the browser automatically

        Returns:
            The newly stored TokenSet

        Raises:
            AuthorizationError: Browser step failed, timed out or was cancelled
            NetworkError, TokenExchangeRejected, ProtocolError: Code exchange failed
            TokenStorageError: Tokens could not be written
        """
        challenge = new_challenge()
        state = new_state()
        auth_url = self.build_authorization_url(challenge, state)

        code = self._authorize(
            auth_url,
            self.config.redirect_uri,
            state,
            open_browser=open_browser,
            timeout=self.config.login_timeout_seconds,
        )

        token = self.exchange_client.exchange(
            code, challenge.verifier, self.config.redirect_uri
        )
        self._save(token)
        logger.info("Login complete, tokens stored")
        return token

    def get_valid_token(self) -> str:
        """
        Get a valid access token, refreshing it first if necessary.

        This is the single entry point command logic uses before calling
        the TickTick API. It never starts an interactive login.

        Returns:
            Valid access token string

        Raises:
            NotAuthenticated: No stored credentials
            ReauthRequired: Refresh token rejected (store has been cleared)
            NetworkError, ProtocolError: Refresh attempt failed (store untouched)
            StoreCorrupt: Credential file unreadable
        """
        token, _ = self.store.load()

        if token is None:
            raise NotAuthenticated("Not logged in. Run 'tt auth login' to authenticate.")

        if not self._needs_refresh(token):
            return token.access_token

        logger.info(
            f"Access token expires within {self.config.refresh_margin_seconds}s, refreshing"
        )
        return self._refresh(token).access_token

    def get_authorization_header(self) -> dict:
        """
        Get Authorization header dict for API requests.

        Returns:
            Dict with Authorization header: {"Authorization": "Bearer <token>"}
        """
        return {"Authorization": f"Bearer {self.get_valid_token()}"}

    def logout(self) -> bool:
        """
        Delete stored credentials (local logout).

        Tokens are not revoked on TickTick's servers.

        Returns:
            True if credentials were removed, False if none were stored
        """
        removed = self.store.clear()
        logger.info("Credentials cleared (local logout)")
        return removed

    def get_status(self) -> dict:
        """
        Get current authentication status for diagnostics.

        Token values are never included.

        Returns:
            Dictionary with status information:
            - authenticated: Whether tokens are stored
            - expired: Whether the access token is expired or inside the margin
            - expires_at: When the access token expires
            - expires_in_seconds: Seconds until expiry
            - scope: Granted scopes
            - mode: "client-secret" or "broker"
            - credentials_path: Resolved credential file path
        """
        status = {"mode": self.config.mode}
        status.update(
            credential_status(
                self.store, self.config.refresh_margin_seconds, now=self._clock()
            )
        )
        return status

    def _needs_refresh(self, token: TokenSet) -> bool:
        return token.expires_within(self.config.refresh_margin_seconds, now=self._clock())

    def _refresh(self, current: TokenSet) -> TokenSet:
        if not current.refresh_token:
            self.store.clear()
            raise ReauthRequired(
                "Access token expired and no refresh token is stored. "
                "Run 'tt auth login' again."
            )

        try:
            fresh = self.exchange_client.refresh(current.refresh_token)
        except TokenExchangeRejected as e:
            logger.warning(f"Refresh token rejected (status {e.status}); clearing credentials")
            self.store.clear()
            raise ReauthRequired(
                "Your session has expired or was revoked. Run 'tt auth login' again."
            ) from e

        if not fresh.refresh_token:
            fresh = replace(
                fresh,
                refresh_token=current.refresh_token,
                scope=fresh.scope or current.scope,
            )

        self._save(fresh)
        logger.info("Access token refreshed")
        return fresh

    def _save(self, token: TokenSet) -> None:
        app = None
        if not self.config.uses_broker:
            app = StoredAppConfig(
                client_id=self.config.client_id, redirect_uri=self.config.redirect_uri
            )
        self.store.save(token, app)
