"""
OAuth 2.0 module for the TickTick CLI.

This module implements the Authorization Code flow with PKCE against
TickTick's OAuth endpoints, either with the user's own client secret or
through the shared OAuth broker.

Public API:
    OAuthConfig: OAuth configuration management
    PKCEChallenge / new_challenge: PKCE verifier and challenge generation
    TokenSet: Token data structure
    CredentialStore: File-based credential persistence
    TokenExchangeClient: Code and refresh-token grants (direct or via broker)
    TokenManager: Token lifecycle management (login, get_valid_token)

Exceptions:
    TickTickOAuthError: Base exception
    ConfigError: Missing or contradictory configuration
    NetworkError: Transport failure, timeout or 5xx answer
    TokenExchangeRejected: Provider declined the exchange/refresh
    ProtocolError: Malformed token response
    StoreCorrupt: Credential file unreadable
    NotAuthenticated: No stored credentials
    ReauthRequired: Refresh token no longer usable
    AuthorizationError: Browser authorization step failed
    TokenStorageError: Credential file write failed
"""

from .auth_server import AuthorizationResult, OAuthCallbackServer, run_authorization_flow
from .config import OAuthConfig
from .exceptions import (
    AuthorizationError,
    ConfigError,
    NetworkError,
    NotAuthenticated,
    ProtocolError,
    ReauthRequired,
    StoreCorrupt,
    TickTickOAuthError,
    TokenExchangeRejected,
    TokenStorageError,
)
from .pkce import PKCEChallenge, new_challenge
from .token_exchange import TokenExchangeClient
from .token_manager import AuthState, TokenManager, credential_status
from .token_storage import CredentialStore, StoredAppConfig, TokenSet

__all__ = [
    # Configuration
    "OAuthConfig",
    # PKCE
    "PKCEChallenge",
    "new_challenge",
    # Credential Storage
    "TokenSet",
    "StoredAppConfig",
    "CredentialStore",
    # Token Exchange
    "TokenExchangeClient",
    # Token Manager
    "TokenManager",
    "AuthState",
    "credential_status",
    # Authorization Server
    "OAuthCallbackServer",
    "AuthorizationResult",
    "run_authorization_flow",
    # Exceptions
    "TickTickOAuthError",
    "ConfigError",
    "NetworkError",
    "TokenExchangeRejected",
    "ProtocolError",
    "StoreCorrupt",
    "NotAuthenticated",
    "ReauthRequired",
    "AuthorizationError",
    "TokenStorageError",
]
