"""
eID login and logout over OpenID Connect with Pushed Authorization Requests.

High-level flow (per login)
---------------------------
1. `VerifyEngine.login(...)` is called with an eID profile, e.g. `DanishMitID.substantial()`.
2. Provider metadata and signing keys are loaded once and cached for the engine's lifetime.
3. The authorization request (scope, acr_values, login_hint, state, nonce, PKCE) is
   pushed to the PAR endpoint; the provider answers with a `request_uri`.
4. The `BrowserDelegate` opens `authorization_endpoint?client_id=...&request_uri=...`
   and suspends until the provider redirects back.
5. The callback's `state` is compared with the one sent; a mismatch discards it.
6. The authorization code is exchanged for an ID token.
7. `TokenVerifier.verify(...)`:
   - Reads the unverified header to get `kid`
   - Resolves the key with exactly that `kid` from the cached key set
   - Runs `jwt.decode(...)` with issuer/audience/algorithms checks and a 5 minute leeway

Security notes
--------------
- Redirect URIs must be HTTPS; anything else is rejected at construction.
- State, nonce and PKCE verifier are fresh random values for every login.
- Only allow known algorithms (avoid algorithm confusion).
- Never trust claims until signature verification succeeds.

Example usage
-----------

.. code-block:: python

    import webbrowser

    from eid_verify import DanishMitID, RedirectBrowser, VerifyEngine, VerifySettings

    settings = VerifySettings.from_env()
    browser = RedirectBrowser(webbrowser.open)

    async with VerifyEngine.from_settings(settings, browser=browser) as engine:
        await engine.prefetch()

        # The host's redirect receiver calls browser.deliver(callback_uri)
        token = await engine.login(DanishMitID.substantial().with_ssn())
        print(token.subject, token.claim("name"))

        await engine.logout(id_token_hint=token.raw)
"""

# Cache
from .cache import CachedResource, ResourceState

# eID profiles
from .eid import (
    Action,
    DanishMitID,
    FrejaID,
    FrejaIDExtendedOrPlus,
    IdentityRequest,
    Mock,
    NorwegianBankID,
    SwedishBankID,
    Vipps,
    encode_hint_text,
)

# Engine
from .engine import VerifyEngine

# Errors
from .errors import (
    AudienceMismatch,
    AuthorizationDenied,
    BrowserHandlerError,
    ConfigurationError,
    ExpiredOrNotYetValid,
    FetchFailure,
    FlowAlreadyInProgress,
    InvalidRedirectUri,
    InvalidToken,
    IssuerMismatch,
    MalformedCallback,
    MalformedResponse,
    NoSuitableBrowser,
    NonceMismatch,
    ProtocolError,
    PushRejected,
    SignatureInvalid,
    StateMismatch,
    TokenExchangeFailed,
    TransportError,
    TrustError,
    UnknownSigningKey,
    UserCancelled,
    VerifyError,
)

# Flow
from .flow import FlowController, FlowState

# Browser handoff
from .handoff import CallbackSlot, RedirectBrowser

# Key providers
from .key_providers import DiscoveryKeyProvider, ProviderMetadata

# PAR
from .par import PushedAuthorization, push_authorization_request

# Protocols
from .protocols import BrowserDelegate, Claims, FlowObserver, KeyProvider

# Request builder
from .request_builder import (
    AuthorizationRequest,
    EndSessionRequest,
    Prompt,
    build_authorization_request,
    build_end_session_request,
)

# Settings
from .settings import VerifySettings

# Verifier
from .verifier import TokenVerifier, TokenVerifyOptions, VerifiedToken

__all__ = [
    # Engine
    "VerifyEngine",
    "VerifySettings",
    # eID profiles
    "Action",
    "DanishMitID",
    "FrejaID",
    "FrejaIDExtendedOrPlus",
    "IdentityRequest",
    "Mock",
    "NorwegianBankID",
    "SwedishBankID",
    "Vipps",
    "encode_hint_text",
    # Errors
    "AudienceMismatch",
    "AuthorizationDenied",
    "BrowserHandlerError",
    "ConfigurationError",
    "ExpiredOrNotYetValid",
    "FetchFailure",
    "FlowAlreadyInProgress",
    "InvalidRedirectUri",
    "InvalidToken",
    "IssuerMismatch",
    "MalformedCallback",
    "MalformedResponse",
    "NoSuitableBrowser",
    "NonceMismatch",
    "ProtocolError",
    "PushRejected",
    "SignatureInvalid",
    "StateMismatch",
    "TokenExchangeFailed",
    "TransportError",
    "TrustError",
    "UnknownSigningKey",
    "UserCancelled",
    "VerifyError",
    # Protocols
    "BrowserDelegate",
    "Claims",
    "FlowObserver",
    "KeyProvider",
    # Browser handoff
    "CallbackSlot",
    "RedirectBrowser",
    # Flow
    "FlowController",
    "FlowState",
    # Cache
    "CachedResource",
    "ResourceState",
    # Key providers
    "DiscoveryKeyProvider",
    "ProviderMetadata",
    # Request builder
    "AuthorizationRequest",
    "EndSessionRequest",
    "Prompt",
    "build_authorization_request",
    "build_end_session_request",
    # PAR
    "PushedAuthorization",
    "push_authorization_request",
    # Verifier
    "TokenVerifier",
    "TokenVerifyOptions",
    "VerifiedToken",
]
