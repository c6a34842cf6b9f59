"""Authorization code exchange at the provider's token endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from .errors import TokenExchangeFailed

if TYPE_CHECKING:
    from .key_providers import ProviderMetadata
    from .request_builder import AuthorizationRequest


async def exchange_code(
    client: httpx.AsyncClient,
    request: AuthorizationRequest,
    metadata: ProviderMetadata,
    code: str,
) -> str:
    """Exchange ``code`` for tokens and return the raw ID token.

    The PKCE verifier generated with ``request`` proves this client started
    the flow.

    Raises:
        TokenExchangeFailed: On transport errors, non-2xx answers, or a
            response without an ``id_token``.
    """
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": request.redirect_uri,
        "client_id": request.client_id,
        "code_verifier": request.code_verifier,
    }
    try:
        response = await client.post(
            metadata.token_endpoint,
            data=form,
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        raise TokenExchangeFailed(f"Token request failed: {e}") from e

    if response.is_error:
        raise TokenExchangeFailed(
            f"Token endpoint returned {response.status_code}: {_error_of(response)}"
        )

    try:
        body = response.json()
    except ValueError as e:
        raise TokenExchangeFailed("Token response is not valid JSON") from e

    id_token = body.get("id_token") if isinstance(body, dict) else None
    if not isinstance(id_token, str) or not id_token:
        raise TokenExchangeFailed("Token response did not contain an id_token")
    return id_token


def _error_of(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and "error" in body:
        return str(body.get("error_description") or body["error"])
    return response.reason_phrase
