"""
OpenID Connect discovery and signing-key provider.

Loads the provider's discovery document and JSON Web Key Set over HTTPS and
keeps both in single-flight caches for the lifetime of the engine.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from jwt import PyJWK, PyJWKSet
from jwt.exceptions import PyJWKSetError

from ..cache import CachedResource
from ..errors import ConfigurationError, FetchFailure, UnknownSigningKey
from ..protocols import KeyProvider

logger = logging.getLogger(__name__)

_REQUIRED_METADATA = (
    "issuer",
    "authorization_endpoint",
    "token_endpoint",
    "pushed_authorization_request_endpoint",
)


def require_domain(domain: str) -> str:
    """Return ``domain`` unchanged if it is a bare host, optionally with a port.

    Raises:
        ConfigurationError: If the domain is empty, carries a scheme, path,
            query or credentials, or has an invalid port.
    """
    if not domain:
        raise ConfigurationError("domain must not be empty")
    if any(c in domain for c in "/?#@") or domain != domain.strip():
        raise ConfigurationError(f"domain must be a bare host name, got {domain!r}")
    try:
        host = httpx.URL(f"https://{domain}/").host
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"domain is not a valid host: {domain!r}") from e
    if not host:
        raise ConfigurationError(f"domain is not a valid host: {domain!r}")
    return domain


@dataclass(frozen=True, slots=True)
class ProviderMetadata:
    """The subset of the discovery document the engine relies on.

    Attributes:
        issuer: Expected ``iss`` of every ID token.
        authorization_endpoint: Browser-facing authorization URL.
        token_endpoint: Code exchange endpoint.
        pushed_authorization_request_endpoint: PAR endpoint (RFC 9126).
        end_session_endpoint: Logout endpoint, if the provider has one.

    Keys are always read from the domain's well-known JWKS path, so an
    advertised ``jwks_uri`` is not kept.
    """

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    pushed_authorization_request_endpoint: str
    end_session_endpoint: str | None = None

    @classmethod
    def from_document(cls, doc: Any) -> ProviderMetadata:
        """Build metadata from a parsed discovery document.

        Raises:
            FetchFailure: If the document is not an object or misses a
                required endpoint.
        """
        if not isinstance(doc, dict):
            raise FetchFailure("Discovery document is not a JSON object")

        missing = [k for k in _REQUIRED_METADATA if not isinstance(doc.get(k), str)]
        if missing:
            raise FetchFailure(f"Discovery document missing {', '.join(missing)}")

        return cls(
            issuer=doc["issuer"],
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            pushed_authorization_request_endpoint=doc[
                "pushed_authorization_request_endpoint"
            ],
            end_session_endpoint=doc.get("end_session_endpoint"),
        )


class DiscoveryKeyProvider(KeyProvider):
    """
    Resolves provider metadata and signing keys for one identity domain.

    Responsibilities
    ----------------
    1. Fetch ``https://{domain}/.well-known/openid-configuration`` once.
    2. Fetch ``https://{domain}/.well-known/jwks.json`` once and index it by
       ``kid``.
    3. Share both loads between concurrent flows (single-flight).
    4. Forget failed loads so the next access retries from scratch.

    The two documents are loaded independently so they can be fetched in
    parallel; neither has a TTL.

    Parameters
    ----------
    domain : str
        Identity provider domain, e.g. ``"example.idura.broker"``.

    http_client : httpx.AsyncClient
        Client used for both fetches. Not closed by this provider.

    Example
    -------
    provider = DiscoveryKeyProvider("example.idura.broker", client)

    metadata = await provider.get_metadata()
    key = await provider.get_key_for_token(kid)
    """

    def __init__(self, domain: str, http_client: httpx.AsyncClient) -> None:
        self._domain = domain
        self._client = http_client
        self.metadata = CachedResource("provider metadata", self._load_metadata)
        self.keys = CachedResource("signing keys", self._load_keys)

    @property
    def discovery_url(self) -> str:
        return f"https://{self._domain}/.well-known/openid-configuration"

    @property
    def jwks_url(self) -> str:
        return f"https://{self._domain}/.well-known/jwks.json"

    async def get_metadata(self) -> ProviderMetadata:
        return await self.metadata.get()

    async def get_signing_keys(self) -> dict[str, PyJWK]:
        return await self.keys.get()

    async def load_all(self) -> tuple[ProviderMetadata, dict[str, PyJWK]]:
        """Load metadata and keys concurrently, failing if either fails."""
        metadata, keys = await asyncio.gather(
            self.get_metadata(), self.get_signing_keys()
        )
        return metadata, keys

    async def get_key_for_token(self, kid: str) -> PyJWK:
        keys = await self.get_signing_keys()
        key = keys.get(kid)
        if key is None:
            raise UnknownSigningKey(kid)
        return key

    def close(self) -> None:
        self.metadata.close()
        self.keys.close()

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise FetchFailure(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise FetchFailure(f"Response from {url} is not valid JSON") from e

    async def _load_metadata(self) -> ProviderMetadata:
        doc = await self._get_json(self.discovery_url)
        metadata = ProviderMetadata.from_document(doc)
        logger.debug("Fetched OIDC configuration for %s", metadata.issuer)
        return metadata

    async def _load_keys(self) -> dict[str, PyJWK]:
        doc = await self._get_json(self.jwks_url)
        try:
            jwk_set = PyJWKSet.from_dict(doc)
        except (PyJWKSetError, TypeError, AttributeError) as e:
            raise FetchFailure(f"Invalid key set from {self.jwks_url}: {e}") from e

        keys = {key.key_id: key for key in jwk_set.keys if key.key_id}
        logger.debug("Fetched %d signing keys", len(keys))
        return keys
