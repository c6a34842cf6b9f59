"""Public entry point: one engine per client id and identity domain."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Self

import httpx

from .errors import ConfigurationError, FetchFailure
from .flow import FlowController, FlowState
from .key_providers import DiscoveryKeyProvider, require_domain
from .request_builder import require_https
from .verifier import TokenVerifier, TokenVerifyOptions

if TYPE_CHECKING:
    from .eid import IdentityRequest
    from .errors import VerifyError
    from .protocols import BrowserDelegate, FlowObserver
    from .request_builder import Prompt
    from .settings import VerifySettings
    from .verifier import VerifiedToken

logger = logging.getLogger(__name__)


class VerifyEngine:
    """Logs users in and out with an eID through an OIDC provider.

    Provider metadata and signing keys are fetched once per engine and shared
    by every flow. To pick up rotated keys, close the engine and build a new
    one.

    Example:
        ```python
        async with VerifyEngine(
            client_id="urn:my:application",
            domain="example.idura.broker",
            redirect_uri="https://app.example.com/callback",
            browser=RedirectBrowser(webbrowser.open),
        ) as engine:
            token = await engine.login(DanishMitID.substantial())
            print(token.subject, token.identity_scheme)
        ```

    Args:
        client_id: OAuth2 client identifier.
        domain: Identity provider host, without scheme. May carry a port.
        redirect_uri: HTTPS callback URI registered with the provider.
        browser: User-facing browser capability. Optional at construction;
            flows fail with NoSuitableBrowser without one.
        app_switch_uri: HTTPS URI eID apps return to after an app switch.
        app_switch_platform: Platform announced in app-switch hints.
        http_client: Client to use. An injected client is never closed by
            the engine.
        timeout: Timeout in seconds for an engine-owned client.
        verify_options: Token validation rules.
        observers: Notified around every flow transition.

    Raises:
        ConfigurationError: On an empty client id or a domain that is not a
            bare host.
        InvalidRedirectUri: If a redirect or app-switch URI is not HTTPS.
    """

    def __init__(
        self,
        client_id: str,
        domain: str,
        redirect_uri: str,
        *,
        browser: BrowserDelegate | None = None,
        app_switch_uri: str | None = None,
        app_switch_platform: str = "android",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        verify_options: TokenVerifyOptions | None = None,
        observers: Sequence[FlowObserver] = (),
    ) -> None:
        if not client_id:
            raise ConfigurationError("client_id must not be empty")
        require_domain(domain)
        require_https(redirect_uri)
        if app_switch_uri is not None:
            require_https(app_switch_uri, "app_switch_uri")

        self.client_id = client_id
        self.domain = domain
        self._owns_client = http_client is None
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)

        self.key_provider = DiscoveryKeyProvider(domain, self._http)
        self.verifier = TokenVerifier(self.key_provider, verify_options)
        self._flow = FlowController(
            client_id=client_id,
            redirect_uri=redirect_uri,
            http_client=self._http,
            key_provider=self.key_provider,
            verifier=self.verifier,
            browser=browser,
            app_switch_uri=app_switch_uri,
            app_switch_platform=app_switch_platform,
            observers=observers,
        )

    @classmethod
    def from_settings(
        cls,
        settings: VerifySettings,
        *,
        browser: BrowserDelegate | None = None,
        http_client: httpx.AsyncClient | None = None,
        observers: Sequence[FlowObserver] = (),
    ) -> VerifyEngine:
        return cls(
            settings.client_id,
            settings.domain,
            settings.redirect_uri,
            browser=browser,
            app_switch_uri=settings.app_switch_uri,
            app_switch_platform=settings.app_switch_platform,
            http_client=http_client,
            timeout=settings.http_timeout,
            verify_options=settings.verify_options(),
            observers=observers,
        )

    @property
    def state(self) -> FlowState:
        """State of the current or most recent flow."""
        return self._flow.state

    @property
    def last_error(self) -> VerifyError | None:
        return self._flow.failure

    async def prefetch(self) -> None:
        """Start loading provider metadata and signing keys.

        Failures are logged, not raised; the next flow retries the load.
        """
        results = await asyncio.gather(
            self.key_provider.get_metadata(),
            self.key_provider.get_signing_keys(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, FetchFailure):
                logger.warning("Prefetch failed: %s", result)
            elif isinstance(result, BaseException):
                raise result

    async def login(
        self,
        identity_request: IdentityRequest,
        prompt: Prompt | None = None,
    ) -> VerifiedToken:
        """Log the user in and return the verified ID token.

        See FlowController.login for the errors raised.
        """
        return await self._flow.login(identity_request, prompt)

    async def logout(self, id_token_hint: str | None = None) -> None:
        """End the user's provider session.

        Args:
            id_token_hint: The raw ID token from a previous login, if any.
        """
        await self._flow.logout(id_token_hint)

    def cancel(self) -> None:
        """Cancel the running login or logout, if any, in whatever step it is."""
        self._flow.cancel()

    async def aclose(self) -> None:
        """Cancel pending work and release the HTTP client if the engine owns it.

        The running flow is cancelled and awaited first, so it never sends a
        request on a closed client.
        """
        await self._flow.wait_cancelled()
        self.key_provider.close()
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
