"""PKCE (Proof Key for Code Exchange) generation, RFC 7636."""

import base64
import hashlib
import secrets
from dataclasses import dataclass

from .exceptions import AuthorizationError

CHALLENGE_METHOD = "S256"

# token_urlsafe(48) yields 64 characters from the unreserved set
_VERIFIER_BYTES = 48


@dataclass(frozen=True)
class PKCEChallenge:
    """
    One-time PKCE verifier/challenge pair for a single login attempt.

    Held in memory only; never persisted.

    Attributes:
        verifier: High-entropy random string (43-128 chars)
        challenge: BASE64URL(SHA256(verifier)) without padding
        method: Digest algorithm identifier sent to the provider
    """

    verifier: str
    challenge: str
    method: str = CHALLENGE_METHOD

    def __repr__(self) -> str:
        return f"PKCEChallenge(method={self.method!r})"


def derive_challenge(verifier: str) -> str:
    """
    Compute the S256 code challenge for a verifier.

    Args:
        verifier: PKCE code verifier

    Returns:
        URL-safe base64 SHA-256 digest with padding stripped
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _random_token(nbytes: int) -> str:
    try:
        return secrets.token_urlsafe(nbytes)
    except (OSError, NotImplementedError) as e:
        raise AuthorizationError(
            f"Secure random source unavailable, cannot start login: {e}"
        ) from e


def new_challenge() -> PKCEChallenge:
    """
    Generate a fresh verifier/challenge pair.

    Returns:
        PKCEChallenge using the S256 method

    Raises:
        AuthorizationError: If the OS entropy source fails
    """
    verifier = _random_token(_VERIFIER_BYTES)
    return PKCEChallenge(verifier=verifier, challenge=derive_challenge(verifier))


def new_state() -> str:
    """Generate an opaque CSRF ``state`` value for the authorization request."""
    return _random_token(24)
