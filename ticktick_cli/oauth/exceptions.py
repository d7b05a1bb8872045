"""
OAuth exception classes for the TickTick CLI.

Every error the token lifecycle can surface has its own class with a stable
``exit_code`` so scripts can branch on the CLI's exit status. Messages are
safe to print: they never contain client secrets, codes or token values.
"""

from typing import Optional


class TickTickOAuthError(Exception):
    """Base exception for all TickTick OAuth errors."""

    exit_code = 1


class ConfigError(TickTickOAuthError):
    """OAuth configuration is missing or contradictory."""

    exit_code = 3


class NetworkError(TickTickOAuthError):
    """The provider or broker was unreachable or answered with a 5xx status."""

    exit_code = 4


class TokenExchangeRejected(TickTickOAuthError):
    """The provider (or broker) declined a code exchange or refresh."""

    exit_code = 5

    def __init__(self, status: int, provider_message: Optional[str] = None):
        self.status = status
        self.provider_message = provider_message
        message = f"Token request rejected with status {status}"
        if provider_message:
            message = f"{message}: {provider_message}"
        super().__init__(message)


class ProtocolError(TickTickOAuthError):
    """The token endpoint answered 2xx with a body we cannot use."""

    exit_code = 6


class StoreCorrupt(TickTickOAuthError):
    """The credential file exists but cannot be parsed."""

    exit_code = 7


class NotAuthenticated(TickTickOAuthError):
    """No stored credentials (run the login flow first)."""

    exit_code = 8


class ReauthRequired(TickTickOAuthError):
    """The refresh token is no longer usable; interactive login is needed."""

    exit_code = 9


class AuthorizationError(TickTickOAuthError):
    """The interactive authorization step failed, timed out or was cancelled."""

    exit_code = 10


class TokenStorageError(TickTickOAuthError):
    """Writing or deleting the credential file failed (file I/O error)."""

    exit_code = 11
