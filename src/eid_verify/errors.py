"""Login, logout and token verification errors.

This module defines the exception hierarchy for every way a login or logout
flow can end without a verified token. All errors inherit from VerifyError to
allow catch-all error handling, and fall into four categories so callers can
react without inspecting messages:

- ConfigurationError: the engine was set up wrongly. Never retried.
- TransportError: the provider could not be reached. Safe to retry.
- ProtocolError: the provider or browser answered with something unusable.
- TrustError: a token arrived but cannot be trusted. Security relevant.

UserCancelled sits outside all four: the user closing the browser is an
ordinary outcome, not a failure of the engine or the provider.

Security Note:
    Messages never include tokens, authorization codes or PKCE verifiers.
"""

from __future__ import annotations


class VerifyError(Exception):
    """Base exception for all login, logout and verification failures.

    Application code can catch this single exception type to handle any
    failure generically.
    """


# ============================================================================
# Configuration
# ============================================================================


class ConfigurationError(VerifyError):
    """Raised when the engine is configured in a way that can never work.

    Surfaced immediately, before any network call.
    """


class InvalidRedirectUri(ConfigurationError):  # noqa: N818
    """Raised when a redirect or app-switch URI is not an HTTPS URI.

    Rejected at construction so tokens are never sent over an insecure channel.
    """


class NoSuitableBrowser(ConfigurationError):  # noqa: N818
    """Raised when no browser delegate is available to present the login page."""

    def __init__(self, message: str = "No suitable browser found") -> None:
        super().__init__(message)


# ============================================================================
# Transport
# ============================================================================


class TransportError(VerifyError):
    """Raised when a network exchange with the provider fails.

    This occurs when:
    - The discovery or key-set endpoint is unreachable
    - The PAR endpoint cannot be reached
    - The token endpoint cannot be reached or rejects the code

    A later attempt may succeed; cached resources never remember failures.
    """


class FetchFailure(TransportError):  # noqa: N818
    """Raised when provider metadata or the signing-key set cannot be loaded.

    This occurs when the endpoint is unreachable, answers with a non-success
    status, or returns a document that is not valid JSON or misses required
    fields.
    """


class TokenExchangeFailed(TransportError):  # noqa: N818
    """Raised when the authorization code cannot be exchanged for tokens.

    Covers both transport failures and provider error responses from the
    token endpoint, as well as responses without an ``id_token``.
    """


# ============================================================================
# Protocol
# ============================================================================


class ProtocolError(VerifyError):
    """Raised when the provider or browser returns an unusable response.

    The flow is aborted; no partial result is exposed.
    """


class PushRejected(ProtocolError):  # noqa: N818
    """Raised when the PAR endpoint answers with anything other than HTTP 201.

    Attributes:
        status_code: HTTP status returned by the provider.
        description: HTTP reason phrase returned by the provider.
    """

    def __init__(self, status_code: int, description: str) -> None:
        super().__init__(f"Error during PAR request {status_code} {description}")
        self.status_code = status_code
        self.description = description


class StateMismatch(ProtocolError):  # noqa: N818
    """Raised when the callback's ``state`` differs from the one sent.

    The callback is discarded. This is the sole anti-forgery check between
    the request issued and the callback received.
    """


class MalformedCallback(ProtocolError):  # noqa: N818
    """Raised when a callback URI carries neither a code nor an error."""


class AuthorizationDenied(ProtocolError):  # noqa: N818
    """Raised when the provider redirects back with an ``error`` parameter.

    Attributes:
        error: OAuth2 error code (e.g. ``access_denied``).
        description: Optional ``error_description`` from the provider.
    """

    def __init__(self, error: str, description: str | None = None) -> None:
        super().__init__(f"Provider returned error: {description or error}")
        self.error = error
        self.description = description


class MalformedResponse(ProtocolError):  # noqa: N818
    """Raised when a provider endpoint answers with an unparseable body."""


class BrowserHandlerError(ProtocolError):
    """Raised by a browser delegate when the browser itself failed."""


# ============================================================================
# Trust
# ============================================================================


class TrustError(VerifyError):
    """Raised when a token was received but cannot be trusted.

    Distinct from TransportError: the provider was reached, but its answer
    failed verification. Treat as security relevant and do not retry blindly.
    """


class InvalidToken(TrustError):  # noqa: N818
    """Raised when a token is present but cannot be verified.

    This occurs when:
    - Token is malformed (not a valid JWT structure)
    - A required claim is missing
    - Any of the more specific subclasses below applies
    """


class UnknownSigningKey(InvalidToken):  # noqa: N818
    """Raised when the token's ``kid`` is not in the provider's key set.

    No fallback key is tried.

    Attributes:
        kid: The key id from the token header, if any.
    """

    def __init__(self, kid: str | None) -> None:
        super().__init__(f"Unknown key {kid}")
        self.kid = kid


class SignatureInvalid(InvalidToken):  # noqa: N818
    """Raised when the token's signature does not verify against its key."""


class IssuerMismatch(InvalidToken):  # noqa: N818
    """Raised when the ``iss`` claim differs from the expected issuer."""


class AudienceMismatch(InvalidToken):  # noqa: N818
    """Raised when the ``aud`` claim does not contain the client id."""


class NonceMismatch(InvalidToken):  # noqa: N818
    """Raised when the ``nonce`` claim differs from the one sent."""


class ExpiredOrNotYetValid(TrustError):  # noqa: N818
    """Raised when ``exp``, ``nbf`` or ``iat`` fall outside the allowed window.

    Clock skew between device and provider is tolerated up to the configured
    leeway (five minutes by default) in both directions.
    """


# ============================================================================
# Outcomes and programming errors
# ============================================================================


class UserCancelled(VerifyError):  # noqa: N818
    """Raised when the user dismisses the browser before completing the flow.

    Deliberately not a ConfigurationError, TransportError, ProtocolError or
    TrustError.
    """

    def __init__(self, message: str = "User cancelled the flow") -> None:
        super().__init__(message)


class FlowAlreadyInProgress(VerifyError):  # noqa: N818
    """Raised when a login or logout is started while another one is running.

    Each engine instance owns a single pending-callback slot; overlapping
    flows would overwrite it.
    """
