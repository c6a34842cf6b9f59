"""Pushed Authorization Requests (RFC 9126).

The full authorization request is POSTed to the provider out-of-band; the
browser is then sent to the authorization endpoint with nothing but the client
id and the opaque ``request_uri`` the provider handed back. This keeps the
request parameters out of the browser's address bar and history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from .errors import MalformedResponse, PushRejected, TransportError

if TYPE_CHECKING:
    from .key_providers import ProviderMetadata
    from .request_builder import AuthorizationRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PushedAuthorization:
    """Result of a successful push.

    Attributes:
        request_uri: Provider-issued reference to the pushed request.
        expires_in: Lifetime of ``request_uri`` in seconds. Informational;
            the engine does not enforce it.
        authorization_url: Browser-facing URL for this request.
    """

    request_uri: str
    expires_in: int
    authorization_url: str


async def push_authorization_request(
    client: httpx.AsyncClient,
    request: AuthorizationRequest,
    metadata: ProviderMetadata,
) -> PushedAuthorization:
    """Push ``request`` to the provider's PAR endpoint.

    Args:
        client: HTTP client to send the request with.
        request: The assembled authorization request.
        metadata: Provider metadata carrying the PAR and authorization endpoints.

    Returns:
        The provider's request reference and the URL to open in the browser.

    Raises:
        TransportError: If the PAR endpoint cannot be reached.
        PushRejected: If the provider answers with anything but HTTP 201.
        MalformedResponse: If the 201 body lacks a usable ``request_uri``.
    """
    endpoint = metadata.pushed_authorization_request_endpoint
    try:
        response = await client.post(endpoint, data=request.to_params())
    except httpx.HTTPError as e:
        raise TransportError(f"PAR request to {endpoint} failed: {e}") from e

    if response.status_code != 201:
        logger.warning("PAR request rejected with status %d", response.status_code)
        raise PushRejected(response.status_code, response.reason_phrase)

    try:
        body = response.json()
        request_uri = body["request_uri"]
        expires_in = int(body.get("expires_in", 0))
    except (ValueError, KeyError, TypeError) as e:
        raise MalformedResponse("PAR response is missing request_uri") from e

    if not isinstance(request_uri, str) or not request_uri:
        raise MalformedResponse("PAR response has an invalid request_uri")

    authorization_url = httpx.URL(metadata.authorization_endpoint).copy_merge_params(
        {"client_id": request.client_id, "request_uri": request_uri}
    )
    logger.debug("Pushed authorization request, expires in %ds", expires_in)

    return PushedAuthorization(
        request_uri=request_uri,
        expires_in=expires_in,
        authorization_url=str(authorization_url),
    )
