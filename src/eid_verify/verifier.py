"""ID token verification using PyJWT.

This module provides the verifier run at the end of every login:
- Extracts the key ID (kid) from the token header
- Resolves the signing key via an injected KeyProvider, by exact kid match
- Validates signature, issuer, audience and time claims using PyJWT
- Maps PyJWT exceptions to the TrustError hierarchy

Only after all checks pass is a VerifiedToken constructed, so holding one is
proof that the token was signed by the provider and is currently valid.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

import jwt

from .errors import (
    AudienceMismatch,
    ExpiredOrNotYetValid,
    InvalidToken,
    IssuerMismatch,
    NonceMismatch,
    SignatureInvalid,
    UnknownSigningKey,
)
from .protocols import Claims

if TYPE_CHECKING:
    from .protocols import KeyProvider

DEFAULT_LEEWAY: Final[int] = 5 * 60
"""Clock skew tolerated between device and provider, in seconds."""

IDENTITY_SCHEME_CLAIM: Final[str] = "identityscheme"


@dataclass(frozen=True, slots=True)
class TokenVerifyOptions:
    """Configuration for ID token validation rules.

    Attributes:
        algorithms: Tuple of allowed signing algorithms. MUST be an explicit
            allowlist to prevent algorithm confusion attacks. Default: ("RS256",)

        leeway: Clock skew tolerance in seconds for exp/nbf/iat validation,
            applied in both directions. Default: five minutes, since phones
            are frequently out of sync with the provider.

        required_claims: Claims that must be present. Default: ("iss", "sub").
    """

    algorithms: tuple[str, ...] = ("RS256",)
    leeway: int = DEFAULT_LEEWAY
    required_claims: tuple[str, ...] = ("iss", "sub")


@dataclass(frozen=True, slots=True)
class VerifiedToken:
    """An ID token whose signature, issuer and validity window were checked.

    Attributes:
        raw: The token as received, e.g. for use as ``id_token_hint``.
        header: The token's JOSE header.
        claims: Verified claims, read-only.
        subject: The ``sub`` claim.
        identity_scheme: Which eID the user logged in with (``identityscheme``
            claim), e.g. ``"dkmitid"``.
    """

    raw: str = field(repr=False)
    header: Mapping[str, Any]
    claims: Claims
    subject: str
    identity_scheme: str | None

    def claim(self, name: str) -> str | None:
        """Return claim ``name`` if it is a string, otherwise None."""
        value = self.claims.get(name)
        return value if isinstance(value, str) else None


class TokenVerifier:
    """Provider-agnostic ID token verification using PyJWT.

    Architecture:
        1. Extract kid from token header (unverified)
        2. Resolve signing key via KeyProvider; unknown kid fails fast
        3. Verify signature and claims via PyJWT
        4. Map exceptions to domain errors

    Example:
        ```python
        verifier = TokenVerifier(key_provider)

        try:
            token = await verifier.verify(raw, issuer="https://example.idura.broker")
        except ExpiredOrNotYetValid:
            # Device clock is far off, or the token is stale
        except TrustError:
            # Reached the provider, but its answer cannot be trusted
        ```

    Attributes:
        _keys: KeyProvider responsible for resolving signing keys.
        _opt: Immutable verification options (algorithms, leeway).
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        options: TokenVerifyOptions | None = None,
    ) -> None:
        self._keys = key_provider
        self._opt = options or TokenVerifyOptions()

    async def verify(
        self,
        token: str,
        issuer: str,
        *,
        audience: str | None = None,
        nonce: str | None = None,
    ) -> VerifiedToken:
        """Verify an ID token and return it with its claims.

        Args:
            token: Raw JWT string from the token endpoint.
            issuer: Expected ``iss``, compared exactly.
            audience: Expected ``aud`` (the client id). If None, audience is
                not validated and tokens carrying an ``aud`` are rejected.
            nonce: Nonce sent with the authorization request. Checked when
                the token carries a ``nonce`` claim.

        Returns:
            VerifiedToken exposing the verified claims.

        Raises:
            UnknownSigningKey: kid missing or not in the provider's key set.
            SignatureInvalid: Signature or algorithm check failed.
            IssuerMismatch: ``iss`` differs from ``issuer``.
            AudienceMismatch: ``aud`` does not match ``audience``.
            NonceMismatch: ``nonce`` claim differs from ``nonce``.
            ExpiredOrNotYetValid: exp/nbf/iat outside the leeway window.
            InvalidToken: Malformed token or missing required claim.
            FetchFailure: The key set could not be loaded.
        """
        # Step 1: Extract kid from token header (cheap, no crypto)
        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError as e:
            raise InvalidToken(f"Token is malformed: {e}") from e

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise UnknownSigningKey(None)

        key = await self._keys.get_key_for_token(kid)

        # Step 2: Verify signature + validate claims
        try:
            decoded_claims = jwt.decode(
                token,
                key,  # PyJWK object is directly usable by jwt.decode
                algorithms=list(self._opt.algorithms),
                issuer=issuer,
                audience=audience,
                leeway=self._opt.leeway,
                options={"require": list(self._opt.required_claims)},
            )

        except (jwt.ExpiredSignatureError, jwt.ImmatureSignatureError) as e:
            raise ExpiredOrNotYetValid(f"Token is outside its validity window: {e}") from e

        except jwt.InvalidIssuerError as e:
            raise IssuerMismatch(f"Token issuer does not match {issuer}") from e

        except jwt.InvalidAudienceError as e:
            raise AudienceMismatch("Token audience does not match") from e

        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            raise SignatureInvalid(f"Token signature verification failed: {e}") from e

        except jwt.InvalidTokenError as e:
            # Malformed structure, missing required claims, bad iat type, ...
            raise InvalidToken(f"Token validation failed: {e}") from e

        if nonce is not None and "nonce" in decoded_claims:
            if not secrets.compare_digest(
                str(decoded_claims["nonce"]).encode(), nonce.encode()
            ):
                raise NonceMismatch("Token nonce does not match the request")

        scheme = decoded_claims.get(IDENTITY_SCHEME_CLAIM)
        return VerifiedToken(
            raw=token,
            header=MappingProxyType(dict(header)),
            claims=MappingProxyType(decoded_claims),
            subject=decoded_claims["sub"],
            identity_scheme=scheme if isinstance(scheme, str) else None,
        )
