"""Authorization and end-session request construction.

Turns an IdentityRequest plus runtime options into the exact parameters that
are pushed to the provider's PAR endpoint, and builds the logout request sent
to the end-session endpoint.

Rules:
- ``scope`` is the request's scopes plus ``openid``, space-joined, in
  insertion order with ``openid`` last unless already present.
- ``acr_values`` is the acr value chain joined with ``:``.
- ``login_hint`` starts with a baseline hint that suppresses the eID's
  in-browser "continue" button, followed by the request's hints, app-switch
  hints (eIDs that support it, when configured), and the action hint.
- ``state``, ``nonce`` and the PKCE verifier are fresh random values on every
  call and never derived from input.

Security Note:
    Redirect URIs must be HTTPS. A non-HTTPS URI is rejected here, before any
    network call, so tokens are never sent over an insecure channel.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

import httpx

from .eid import IdentityRequest
from .errors import InvalidRedirectUri
from .pkce import PKCEChallenge

BASELINE_LOGIN_HINT: Final[str] = "mobile:continue_button:never"
"""Hint sent with every login to disable in-browser "continue" prompts."""

APPSWITCH_QUERY_PARAM: Final[str] = "eid_verify_appswitch"
"""Marker query parameter on the app-switch resume URL."""

_STATE_BYTES: Final[int] = 32


class Prompt(Enum):
    """OIDC ``prompt`` values accepted by the provider."""

    LOGIN = "login"
    NONE = "none"
    CONSENT = "consent"
    CONSENT_REVOKE = "consent_revoke"


def require_https(uri: str, name: str = "redirect_uri") -> str:
    """Return ``uri`` unchanged if it is an absolute HTTPS URI.

    Raises:
        InvalidRedirectUri: If the scheme is not ``https`` or the host is missing.
    """
    try:
        parsed = httpx.URL(uri)
    except httpx.InvalidURL as e:
        raise InvalidRedirectUri(f"{name} is not a valid URI: {uri!r}") from e

    if parsed.scheme != "https" or not parsed.host:
        raise InvalidRedirectUri(f"{name} must be an HTTPS URI, got {uri!r}")
    return uri


def app_switch_resume_url(app_switch_uri: str) -> str:
    """Return the app-switch URI tagged with the app-switch marker parameter."""
    return str(httpx.URL(app_switch_uri).copy_add_param(APPSWITCH_QUERY_PARAM, ""))


def is_app_switch_callback(uri: str) -> bool:
    """Whether ``uri`` only resumes the app after an app switch."""
    return APPSWITCH_QUERY_PARAM in httpx.URL(uri).params


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """A PAR-bound authorization request.

    ``state`` is the only anti-forgery correlation between this request and
    the callback that answers it. ``code_verifier`` never leaves the engine
    until token exchange and is excluded from ``repr``.
    """

    client_id: str
    redirect_uri: str
    scope: str
    acr_values: str
    login_hint: str
    state: str
    nonce: str
    code_challenge: str
    code_verifier: str = field(repr=False)
    code_challenge_method: str = "S256"
    prompt: str | None = None
    response_type: str = "code"

    def to_params(self) -> dict[str, str]:
        """Every query parameter of the request, as sent to the PAR endpoint."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": self.response_type,
            "scope": self.scope,
            "acr_values": self.acr_values,
            "login_hint": self.login_hint,
            "state": self.state,
            "nonce": self.nonce,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }
        if self.prompt is not None:
            params["prompt"] = self.prompt
        return params


def build_authorization_request(
    identity_request: IdentityRequest,
    client_id: str,
    redirect_uri: str,
    prompt: Prompt | None = None,
    *,
    app_switch_uri: str | None = None,
    app_switch_platform: str = "android",
) -> AuthorizationRequest:
    """Assemble the authorization request for one login attempt.

    Args:
        identity_request: The eID and its options.
        client_id: OAuth2 client identifier.
        redirect_uri: HTTPS callback URI registered with the provider.
        prompt: Optional OIDC prompt.
        app_switch_uri: HTTPS URI the eID app returns to after an app switch.
            Only used for eIDs that support app switching.
        app_switch_platform: Platform announced in the app-switch hint.

    Returns:
        A new AuthorizationRequest with fresh state, nonce and PKCE pair.

    Raises:
        InvalidRedirectUri: If ``redirect_uri`` or ``app_switch_uri`` is not HTTPS.
    """
    require_https(redirect_uri)

    scopes = list(identity_request.scopes)
    if "openid" not in scopes:
        scopes.append("openid")

    hints = [BASELINE_LOGIN_HINT, *identity_request.login_hints]
    if app_switch_uri is not None and identity_request.supports_app_switch:
        require_https(app_switch_uri, "app_switch_uri")
        hints.append(f"appswitch:{app_switch_platform}")
        hints.append(f"appswitch:resumeUrl:{app_switch_resume_url(app_switch_uri)}")
    if identity_request.action is not None:
        hints.append(f"action:{identity_request.action.value}")

    pkce = PKCEChallenge.generate()

    return AuthorizationRequest(
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=" ".join(scopes),
        acr_values=identity_request.acr_value,
        login_hint=" ".join(dict.fromkeys(hints)),
        state=secrets.token_urlsafe(_STATE_BYTES),
        nonce=secrets.token_urlsafe(_STATE_BYTES),
        code_challenge=pkce.challenge,
        code_verifier=pkce.verifier,
        code_challenge_method=pkce.method,
        prompt=prompt.value if prompt is not None else None,
    )


@dataclass(frozen=True, slots=True)
class EndSessionRequest:
    """An RP-initiated logout request."""

    end_session_endpoint: str
    client_id: str
    post_logout_redirect_uri: str
    state: str
    id_token_hint: str | None = field(default=None, repr=False)

    def to_params(self) -> dict[str, str]:
        params = {
            "client_id": self.client_id,
            "post_logout_redirect_uri": self.post_logout_redirect_uri,
            "state": self.state,
        }
        if self.id_token_hint is not None:
            params["id_token_hint"] = self.id_token_hint
        return params

    @property
    def url(self) -> str:
        """Browser-facing logout URL."""
        return str(httpx.URL(self.end_session_endpoint).copy_merge_params(self.to_params()))


def build_end_session_request(
    end_session_endpoint: str,
    client_id: str,
    redirect_uri: str,
    id_token_hint: str | None = None,
) -> EndSessionRequest:
    """Assemble a logout request with a fresh ``state``."""
    require_https(redirect_uri)
    return EndSessionRequest(
        end_session_endpoint=end_session_endpoint,
        client_id=client_id,
        post_logout_redirect_uri=redirect_uri,
        state=secrets.token_urlsafe(_STATE_BYTES),
        id_token_hint=id_token_hint,
    )
