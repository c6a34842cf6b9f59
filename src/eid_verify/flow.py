"""Login and logout flow orchestration.

A login runs strictly in this order, each step starting only after the
previous one succeeded:

1. Load provider metadata and signing keys (cached, shared between flows).
2. Build the authorization request and push it to the PAR endpoint.
3. Hand the authorization URL to the browser delegate and wait for the
   callback, for as long as the user takes.
4. Compare the callback's ``state`` with the one sent. Mismatch aborts.
5. Exchange the authorization code at the token endpoint.
6. Verify the ID token.

Logout loads metadata, sends the user to the end-session endpoint and
validates the returned state, but a mismatch there is only logged: the
provider cannot be forced to echo state on every logout path.

Concurrency Model:
    Every network and browser boundary is an ``await``; no thread is blocked
    while the user is in the browser. One controller runs at most one flow at
    a time, because it owns a single pending-browser slot. Starting a second
    flow fails with FlowAlreadyInProgress instead of overwriting the slot.
    ``cancel()`` cancels the task running the flow, so no later step starts.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from .errors import (
    AuthorizationDenied,
    BrowserHandlerError,
    ConfigurationError,
    FlowAlreadyInProgress,
    MalformedCallback,
    NoSuitableBrowser,
    StateMismatch,
    VerifyError,
)
from .par import push_authorization_request
from .request_builder import build_authorization_request, build_end_session_request
from .token_exchange import exchange_code

if TYPE_CHECKING:
    from .eid import IdentityRequest
    from .key_providers import DiscoveryKeyProvider
    from .protocols import BrowserDelegate, FlowObserver
    from .request_builder import Prompt
    from .verifier import TokenVerifier, VerifiedToken

logger = logging.getLogger(__name__)


class FlowState(Enum):
    """State of the current (or last) flow.

    Each working state names the step in progress. FAILED is reachable from
    every non-terminal state and absorbs the flow until the next one starts.
    """

    IDLE = "idle"
    AWAITING_METADATA = "awaiting_metadata"
    REQUEST_PUSHED = "request_pushed"
    AWAITING_CALLBACK = "awaiting_callback"
    VALIDATING_STATE = "validating_state"
    EXCHANGING_CODE = "exchanging_code"
    VERIFYING_TOKEN = "verifying_token"
    COMPLETE = "complete"
    FAILED = "failed"


class FlowController:
    """Runs one login or logout at a time against a single provider.

    Parameters
    ----------
    client_id : str
        OAuth2 client identifier.
    redirect_uri : str
        HTTPS callback URI.
    http_client : httpx.AsyncClient
        Client for the PAR and token endpoints.
    key_provider : DiscoveryKeyProvider
        Shared metadata and signing-key cache.
    verifier : TokenVerifier
        Verifier for the returned ID token.
    browser : BrowserDelegate, optional
        User-facing browser capability. Without one, every flow fails with
        NoSuitableBrowser before touching the network.
    app_switch_uri : str, optional
        HTTPS URI eID apps return to after an app switch.
    app_switch_platform : str
        Platform announced in app-switch login hints.
    observers : Sequence[FlowObserver]
        Notified at the start and end of every transition.
    """

    def __init__(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        http_client: httpx.AsyncClient,
        key_provider: DiscoveryKeyProvider,
        verifier: TokenVerifier,
        browser: BrowserDelegate | None = None,
        app_switch_uri: str | None = None,
        app_switch_platform: str = "android",
        observers: Sequence[FlowObserver] = (),
    ) -> None:
        self._client_id = client_id
        self._redirect_uri = redirect_uri
        self._http = http_client
        self._keys = key_provider
        self._verifier = verifier
        self._browser = browser
        self._app_switch_uri = app_switch_uri
        self._app_switch_platform = app_switch_platform
        self._observers = tuple(observers)

        self._state = FlowState.IDLE
        self._failure: VerifyError | None = None
        self._flow_id: str | None = None
        self._active = False
        # The task running the current flow.
        self._flow_task: asyncio.Task[object] | None = None

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def failure(self) -> VerifyError | None:
        """The error that moved the last flow to FAILED, if any."""
        return self._failure

    @property
    def in_progress(self) -> bool:
        return self._active

    async def login(
        self,
        identity_request: IdentityRequest,
        prompt: Prompt | None = None,
    ) -> VerifiedToken:
        """Run a full login and return the verified ID token.

        Raises:
            NoSuitableBrowser: No browser delegate is configured.
            FlowAlreadyInProgress: Another flow is running on this controller.
            UserCancelled: The user left the browser without finishing.
            TransportError: A provider endpoint could not be reached.
            ProtocolError: PAR rejected, state mismatch, or bad callback.
            TrustError: The ID token failed verification.
        """
        browser = self._require_browser()

        with self._exclusive("login") as flow_id:
            logger.info(
                "Starting login with %s, flow %s", identity_request.acr_value, flow_id
            )

            with self._transition(FlowState.AWAITING_METADATA):
                metadata, _ = await self._keys.load_all()

            with self._transition(FlowState.REQUEST_PUSHED):
                request = build_authorization_request(
                    identity_request,
                    self._client_id,
                    self._redirect_uri,
                    prompt,
                    app_switch_uri=self._app_switch_uri,
                    app_switch_platform=self._app_switch_platform,
                )
                pushed = await push_authorization_request(self._http, request, metadata)

            with self._transition(FlowState.AWAITING_CALLBACK):
                callback_uri = await self._launch_browser(browser, pushed.authorization_url)

            with self._transition(FlowState.VALIDATING_STATE):
                params = _callback_params(callback_uri)
                if not _states_match(request.state, params.get("state")):
                    logger.warning(
                        "State returned in authorization response (%s) does not match "
                        "state from request (%s) - discarding response",
                        params.get("state"),
                        request.state,
                    )
                    raise StateMismatch("State mismatch")
                if "error" in params:
                    raise AuthorizationDenied(params["error"], params.get("error_description"))
                code = params.get("code")
                if not code:
                    raise MalformedCallback("Callback did not contain an authorization code")

            with self._transition(FlowState.EXCHANGING_CODE):
                id_token = await exchange_code(self._http, request, metadata, code)

            with self._transition(FlowState.VERIFYING_TOKEN):
                token = await self._verifier.verify(
                    id_token,
                    metadata.issuer,
                    audience=self._client_id,
                    nonce=request.nonce,
                )

            self._state = FlowState.COMPLETE
            logger.info("Login flow %s complete", flow_id)
            return token

    async def logout(self, id_token_hint: str | None = None) -> None:
        """End the provider session.

        A state mismatch on the way back is logged, not raised.

        Raises:
            NoSuitableBrowser: No browser delegate is configured.
            FlowAlreadyInProgress: Another flow is running on this controller.
            ConfigurationError: The provider has no end-session endpoint.
            UserCancelled: The user left the browser without finishing.
            TransportError: Provider metadata could not be loaded.
        """
        browser = self._require_browser()

        with self._exclusive("logout") as flow_id:
            logger.info("Starting logout, flow %s", flow_id)

            with self._transition(FlowState.AWAITING_METADATA):
                metadata = await self._keys.get_metadata()
                if not metadata.end_session_endpoint:
                    raise ConfigurationError("Provider does not advertise an end_session_endpoint")

            request = build_end_session_request(
                metadata.end_session_endpoint,
                self._client_id,
                self._redirect_uri,
                id_token_hint,
            )

            with self._transition(FlowState.AWAITING_CALLBACK):
                callback_uri = await self._launch_browser(browser, request.url)

            with self._transition(FlowState.VALIDATING_STATE):
                returned = _callback_params(callback_uri).get("state")
                if not _states_match(request.state, returned):
                    logger.warning(
                        "State returned from logout (%s) does not match state from "
                        "request (%s)",
                        returned,
                        request.state,
                    )

            self._state = FlowState.COMPLETE
            logger.info("Logout flow %s complete", flow_id)

    def cancel(self) -> None:
        """Cancel the running flow, whatever step it is in.

        The task awaiting ``login``/``logout`` is cancelled and raises
        CancelledError; the flow ends in FAILED and never reaches a later
        step. Cached metadata and keys are left untouched.
        """
        if self._flow_task is None or self._flow_task.done():
            return
        logger.info("Cancelling flow %s in %s", self._flow_id, self._state.value)
        self._flow_task.cancel()

    async def wait_cancelled(self) -> None:
        """Cancel the running flow and wait until it has unwound."""
        task = self._flow_task
        self.cancel()
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    def _require_browser(self) -> BrowserDelegate:
        if self._browser is None:
            raise NoSuitableBrowser()
        return self._browser

    @contextmanager
    def _exclusive(self, kind: str) -> Iterator[str]:
        if self._active:
            raise FlowAlreadyInProgress(
                f"Cannot start {kind} while flow {self._flow_id} is in progress"
            )
        self._active = True
        self._flow_id = secrets.token_hex(8)
        self._failure = None
        self._flow_task = asyncio.current_task()
        try:
            yield self._flow_id
        finally:
            self._active = False
            self._flow_task = None

    @contextmanager
    def _transition(self, state: FlowState) -> Iterator[None]:
        flow_id = self._flow_id or ""
        self._state = state
        logger.debug("Flow %s entered %s", flow_id, state.value)
        for observer in self._observers:
            observer.transition_started(flow_id, state)
        try:
            yield
        except BaseException as e:
            self._state = FlowState.FAILED
            self._failure = e if isinstance(e, VerifyError) else None
            if isinstance(e, asyncio.CancelledError):
                logger.info("Flow %s cancelled in %s", flow_id, state.value)
            else:
                logger.info("Flow %s failed in %s: %s", flow_id, state.value, e)
            for observer in self._observers:
                observer.transition_finished(flow_id, state, e)
            raise
        for observer in self._observers:
            observer.transition_finished(flow_id, state, None)

    async def _launch_browser(self, browser: BrowserDelegate, url: str) -> str:
        try:
            return await browser.launch(url)
        except VerifyError:
            raise
        except Exception as e:
            raise BrowserHandlerError(f"Browser failed: {e}") from e


def _callback_params(callback_uri: str) -> dict[str, str]:
    try:
        query = httpx.URL(callback_uri).params
    except httpx.InvalidURL as e:
        raise MalformedCallback("Callback is not a valid URI") from e
    return {key: query[key] for key in query.keys()}


def _states_match(expected: str, received: str | None) -> bool:
    if received is None:
        return False
    return secrets.compare_digest(expected.encode(), received.encode())
