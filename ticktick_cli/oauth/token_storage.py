"""
Credential storage for the TickTick CLI.

This module provides file-based persistence of the current token set (and,
in bring-your-own-credentials mode, the non-secret app settings). The file
lives in the per-OS application config directory so that every CLI
invocation resolves the same path.

Writes are atomic: the new content goes to a temporary file in the same
directory, which is then renamed over the old one, so readers never observe
a half-written file.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Tuple

import click

from .exceptions import StoreCorrupt, TokenStorageError

logger = logging.getLogger(__name__)

APP_NAME = "ticktick-cli"
CREDENTIALS_FILENAME = "credentials.json"


@dataclass(frozen=True)
class TokenSet:
    """
    OAuth token set as issued by the provider.

    Immutable; a refresh produces a brand new TokenSet.

    Attributes:
        access_token: Short-lived bearer token for API calls
        refresh_token: Long-lived token for obtaining new access tokens
        expires_at: When the access token expires (timezone-aware UTC)
        token_type: Token type (typically "Bearer")
        scope: Granted OAuth scopes, if reported
    """

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    scope: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("access_token cannot be empty")
        if not isinstance(self.expires_at, datetime) or self.expires_at.tzinfo is None:
            raise ValueError("expires_at must be a timezone-aware datetime")

    def __repr__(self) -> str:
        return (
            f"TokenSet(token_type={self.token_type!r}, "
            f"expires_at={self.expires_at.isoformat()!r}, scope={self.scope!r})"
        )

    @property
    def is_expired(self) -> bool:
        """True if the access token has already expired."""
        return self.expires_within(0)

    def expires_within(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """
        Check if the token expires within the given number of seconds.

        Args:
            seconds: Safety margin in seconds
            now: Reference time (defaults to current UTC time)

        Returns:
            True if the token will be expired at ``now + seconds``
        """
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=seconds) >= self.expires_at

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TokenSet":
        """
        Create a TokenSet from its dictionary form.

        Raises:
            KeyError: If required fields are missing
            TypeError, ValueError: If fields have wrong types or values
        """
        expires_at = datetime.fromisoformat(data["expires_at"])
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=expires_at,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope"),
        )


@dataclass(frozen=True)
class StoredAppConfig:
    """Non-secret app settings persisted alongside tokens (bring-your-own mode)."""

    client_id: str
    redirect_uri: str


class CredentialStore:
    """
    Single-user credential file (JSON, mode 600).

    Layout::

        {"token": {...TokenSet...}, "app": {"client_id": ..., "redirect_uri": ...}}
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize credential storage.

        Args:
            path: Credential file path (defaults to ``default_path()``)
        """
        self.path = Path(path) if path else self.default_path()

    @staticmethod
    def default_path() -> Path:
        """Credential file inside the per-OS application config directory."""
        return Path(click.get_app_dir(APP_NAME)) / CREDENTIALS_FILENAME

    def exists(self) -> bool:
        """Check if the credential file exists."""
        return self.path.exists()

    def load(self) -> Tuple[Optional[TokenSet], Optional[StoredAppConfig]]:
        """
        Load stored credentials.

        Returns:
            (token_set, app_config); both None when nothing is stored

        Raises:
            StoreCorrupt: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            logger.debug(f"No credential file found at {self.path}")
            return None, None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreCorrupt(
                f"Could not read credential file {self.path}: {e.strerror}. "
                f"Run 'tt auth login' again."
            ) from e

        try:
            data = json.loads(raw)
            token_data = data["token"]
            token = TokenSet.from_dict(token_data) if token_data is not None else None
            app_data = data.get("app")
            app = StoredAppConfig(**app_data) if app_data is not None else None
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Invalid credential file at {self.path}")
            raise StoreCorrupt(
                f"Credential file {self.path} is corrupt ({type(e).__name__}). "
                f"Delete it or run 'tt auth login' again."
            ) from e

        logger.debug(f"Credentials loaded from {self.path}")
        return token, app

    def save(self, token: TokenSet, app: Optional[StoredAppConfig] = None) -> None:
        """
        Atomically replace the credential file.

        Args:
            token: Token set to store
            app: Non-secret app settings to store alongside it

        Raises:
            TokenStorageError: If the write fails (previous file left intact)
        """
        payload: dict[str, Any] = {
            "token": token.to_dict(),
            "app": asdict(app) if app else None,
        }
        content = json.dumps(payload, indent=2)

        tmp_path = None
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            # mkstemp creates the file with mode 600
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to save credentials: {e.strerror}")
            raise TokenStorageError(f"Failed to save credentials to {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)

        self._set_secure_permissions()
        logger.info(f"Credentials saved to {self.path}")

    def clear(self) -> bool:
        """
        Delete the credential file (logout). Idempotent.

        Returns:
            True if a file was deleted, False if nothing was stored

        Raises:
            TokenStorageError: If the file exists but cannot be removed
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.debug(f"Credential file does not exist: {self.path}")
            return False
        except OSError as e:
            logger.error(f"Failed to delete credential file: {e}")
            raise TokenStorageError(f"Failed to delete credential file: {e}") from e

        logger.info(f"Credential file deleted: {self.path}")
        return True

    def _set_secure_permissions(self) -> None:
        """Set file permissions to user-only read/write (600)."""
        try:
            self.path.chmod(0o600)
        except OSError as e:
            logger.warning(f"Could not set secure permissions: {e}")
