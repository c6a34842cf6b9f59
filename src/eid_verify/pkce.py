"""PKCE (Proof Key for Code Exchange) for public clients.

RFC 7636, S256 challenge method only: the challenge is the unpadded
base64url SHA-256 digest of the verifier.
"""

from __future__ import annotations

import hashlib
import secrets
from base64 import urlsafe_b64encode
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes:
        verifier: High-entropy random string, sent only at token exchange.
        challenge: base64url SHA-256 of the verifier, sent with the request.
        method: Always ``"S256"``.
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Generate a new verifier/challenge pair from ``length`` random bytes."""
        verifier = secrets.token_urlsafe(length)
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        challenge = urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        return cls(verifier=verifier, challenge=challenge)
