"""End-to-end login and logout flows against an in-memory provider."""

import asyncio
import base64
import hashlib
import logging

import httpx
import pytest

import eid_verify as m

PAR = "/oauth2/par"
TOKEN = "/oauth2/token"
DISCOVERY = "/.well-known/openid-configuration"
JWKS = "/.well-known/jwks.json"


def form_of(request: httpx.Request) -> dict[str, str]:
    return dict(httpx.QueryParams(request.content.decode("ascii")))


class GatedBrowser:
    """Browser that blocks in launch() until the test releases it."""

    def __init__(self, provider):
        self.provider = provider
        self.launched = asyncio.Event()
        self.release = asyncio.Event()
        self.urls: list[str] = []

    async def launch(self, url: str) -> str:
        self.urls.append(url)
        self.launched.set()
        await self.release.wait()
        return f"https://app.example.com/callback?code=c&state={self.provider.pushed['state']}"


async def until_state(engine: m.VerifyEngine, state: m.FlowState) -> None:
    while engine.state is not state:
        await asyncio.sleep(0)


class RecordingObserver:
    def __init__(self):
        self.events: list[tuple[str, m.FlowState, type | None]] = []

    def transition_started(self, flow_id, state):
        self.events.append(("start", state, None))

    def transition_finished(self, flow_id, state, error):
        self.events.append(("end", state, type(error) if error else None))


class TestLogin:
    @pytest.mark.asyncio
    async def test_successful_login(self, engine, provider, browser, settings):
        token = await engine.login(m.DanishMitID.substantial().with_ssn())

        assert token.subject == "e2f1d9a4-user"
        assert token.identity_scheme == "dkmitid"
        assert engine.state is m.FlowState.COMPLETE
        assert engine.last_error is None

        pushed = form_of(provider.calls(PAR)[0])
        assert pushed["acr_values"] == "urn:grn:authn:dk:mitid:substantial"
        assert pushed["scope"] == "ssn openid"
        assert pushed["login_hint"] == "mobile:continue_button:never"
        assert pushed["redirect_uri"] == settings.redirect_uri
        assert pushed["code_challenge_method"] == "S256"

        launched = httpx.URL(browser.urls[0])
        assert launched.path == "/oauth2/authorize"
        assert dict(launched.params) == {
            "client_id": settings.client_id,
            "request_uri": "urn:ietf:params:oauth:request_uri:abc123",
        }

        exchanged = form_of(provider.calls(TOKEN)[0])
        assert exchanged["code"] == "auth-code-1"
        digest = hashlib.sha256(exchanged["code_verifier"].encode()).digest()
        assert base64.urlsafe_b64encode(digest).rstrip(b"=").decode() == pushed["code_challenge"]

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, engine, provider):
        await engine.login(m.Mock().with_mock_data({"name": "foobar"}))

        paths = [r.url.path for r in provider.requests]
        assert set(paths[:2]) == {DISCOVERY, JWKS}
        assert paths[2:] == [PAR, TOKEN]

    @pytest.mark.asyncio
    async def test_metadata_and_keys_are_cached_between_logins(self, engine, provider):
        await engine.login(m.DanishMitID.substantial())
        await engine.login(m.SwedishBankID.same_device())

        assert len(provider.calls(DISCOVERY)) == 1
        assert len(provider.calls(JWKS)) == 1
        assert len(provider.calls(PAR)) == 2

    @pytest.mark.asyncio
    async def test_prompt_is_pushed(self, engine, provider):
        await engine.login(m.DanishMitID.substantial(), prompt=m.Prompt.LOGIN)
        assert form_of(provider.calls(PAR)[0])["prompt"] == "login"

    @pytest.mark.asyncio
    async def test_app_switch_hints(self, make_engine, provider):
        engine = make_engine(app_switch_uri="https://app.example.com/resume")

        await engine.login(m.DanishMitID.substantial())

        hints = form_of(provider.calls(PAR)[0])["login_hint"].split(" ")
        assert "appswitch:android" in hints
        assert any(h.startswith("appswitch:resumeUrl:https://app.example.com/resume?") for h in hints)

    @pytest.mark.asyncio
    async def test_observers_see_every_transition(self, make_engine):
        observer = RecordingObserver()
        engine = make_engine(observers=[observer])

        await engine.login(m.DanishMitID.substantial())

        started = [state for kind, state, _ in observer.events if kind == "start"]
        assert started == [
            m.FlowState.AWAITING_METADATA,
            m.FlowState.REQUEST_PUSHED,
            m.FlowState.AWAITING_CALLBACK,
            m.FlowState.VALIDATING_STATE,
            m.FlowState.EXCHANGING_CODE,
            m.FlowState.VERIFYING_TOKEN,
        ]
        assert all(error is None for _, _, error in observer.events)


class TestLoginFailures:
    @pytest.mark.asyncio
    async def test_par_rejection_never_opens_browser(self, engine, provider, browser):
        provider.par_status = 400

        with pytest.raises(m.PushRejected) as exc_info:
            await engine.login(m.DanishMitID.substantial())

        assert str(exc_info.value) == "Error during PAR request 400 Bad Request"
        assert browser.urls == []
        assert provider.calls(TOKEN) == []
        assert engine.state is m.FlowState.FAILED
        assert engine.last_error is exc_info.value

    @pytest.mark.asyncio
    async def test_no_browser_fails_before_network(self, make_engine, provider):
        engine = make_engine(browser=None)

        with pytest.raises(m.NoSuitableBrowser, match="No suitable browser found"):
            await engine.login(m.DanishMitID.substantial())

        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_metadata_failure_is_retried_on_next_login(self, engine, provider):
        provider.failing_paths.add(DISCOVERY)

        with pytest.raises(m.FetchFailure):
            await engine.login(m.DanishMitID.substantial())
        assert provider.calls(PAR) == []

        provider.failing_paths.clear()
        token = await engine.login(m.DanishMitID.substantial())

        assert token.subject
        assert len(provider.calls(DISCOVERY)) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "query",
        ["code=c&state=forged", "code=c", "code=c&state="],
    )
    async def test_state_mismatch_discards_callback(self, make_engine, make_browser, provider, query):
        engine = make_engine(browser=make_browser(lambda url: f"https://app.example.com/callback?{query}"))

        with pytest.raises(m.StateMismatch):
            await engine.login(m.DanishMitID.substantial())

        assert provider.calls(TOKEN) == []

    @pytest.mark.asyncio
    async def test_state_is_checked_before_provider_error(self, make_engine, make_browser, provider):
        engine = make_engine(
            browser=make_browser(
                lambda url: "https://app.example.com/callback?error=access_denied&state=forged"
            )
        )

        with pytest.raises(m.StateMismatch):
            await engine.login(m.DanishMitID.substantial())

    @pytest.mark.asyncio
    async def test_provider_error_in_callback(self, make_engine, make_browser, provider):
        def respond(url):
            state = provider.pushed["state"]
            return (
                "https://app.example.com/callback?error=access_denied"
                f"&error_description=User+aborted&state={state}"
            )

        engine = make_engine(browser=make_browser(respond))

        with pytest.raises(m.AuthorizationDenied) as exc_info:
            await engine.login(m.DanishMitID.substantial())

        assert exc_info.value.error == "access_denied"
        assert exc_info.value.description == "User aborted"

    @pytest.mark.asyncio
    async def test_callback_without_code(self, make_engine, make_browser, provider):
        engine = make_engine(
            browser=make_browser(
                lambda url: f"https://app.example.com/callback?state={provider.pushed['state']}"
            )
        )

        with pytest.raises(m.MalformedCallback):
            await engine.login(m.DanishMitID.substantial())

    @pytest.mark.asyncio
    async def test_user_cancelled(self, make_engine, make_browser, provider):
        engine = make_engine(browser=make_browser(lambda url: m.UserCancelled()))

        with pytest.raises(m.UserCancelled) as exc_info:
            await engine.login(m.DanishMitID.substantial())

        assert not isinstance(
            exc_info.value,
            (m.ConfigurationError, m.TransportError, m.ProtocolError, m.TrustError),
        )
        assert provider.calls(TOKEN) == []

    @pytest.mark.asyncio
    async def test_browser_crash_is_wrapped(self, make_engine, make_browser):
        engine = make_engine(browser=make_browser(lambda url: RuntimeError("webview died")))

        with pytest.raises(m.BrowserHandlerError) as exc_info:
            await engine.login(m.DanishMitID.substantial())

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_token_endpoint_failure(self, engine, provider):
        provider.token_status = 400
        provider.token_body = {"error": "invalid_grant"}

        with pytest.raises(m.TokenExchangeFailed):
            await engine.login(m.DanishMitID.substantial())

    @pytest.mark.asyncio
    async def test_token_from_other_issuer(self, engine, provider):
        provider.token_claims = {"iss": "https://evil.example.com"}

        with pytest.raises(m.IssuerMismatch):
            await engine.login(m.DanishMitID.substantial())

    @pytest.mark.asyncio
    async def test_token_with_replayed_nonce(self, engine, provider):
        provider.token_claims = {"nonce": "from-another-login"}

        with pytest.raises(m.NonceMismatch):
            await engine.login(m.DanishMitID.substantial())

    @pytest.mark.asyncio
    async def test_observer_sees_failure(self, make_engine, provider):
        observer = RecordingObserver()
        engine = make_engine(observers=[observer])
        provider.par_status = 500

        with pytest.raises(m.PushRejected):
            await engine.login(m.DanishMitID.substantial())

        assert observer.events[-1] == ("end", m.FlowState.REQUEST_PUSHED, m.PushRejected)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_flow_is_rejected_while_one_is_pending(self, make_engine, provider):
        browser = GatedBrowser(provider)
        engine = make_engine(browser=browser)

        first = asyncio.create_task(engine.login(m.DanishMitID.substantial()))
        await browser.launched.wait()

        with pytest.raises(m.FlowAlreadyInProgress):
            await engine.login(m.DanishMitID.substantial())
        with pytest.raises(m.FlowAlreadyInProgress):
            await engine.logout()

        browser.release.set()
        token = await first
        assert token.subject
        assert len(browser.urls) == 1

    @pytest.mark.asyncio
    async def test_cancel_releases_the_slot(self, make_engine, provider):
        browser = GatedBrowser(provider)
        engine = make_engine(browser=browser)

        pending = asyncio.create_task(engine.login(m.DanishMitID.substantial()))
        await browser.launched.wait()
        assert engine.state is m.FlowState.AWAITING_CALLBACK

        engine.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert engine.state is m.FlowState.FAILED
        assert provider.calls(TOKEN) == []

        # The slot is free again and the cache survived.
        browser.release.set()
        assert (await engine.login(m.DanishMitID.substantial())).subject
        assert len(provider.calls(DISCOVERY)) == 1

    @pytest.mark.asyncio
    async def test_cancelling_the_caller_cancels_the_browser(self, make_engine, provider):
        browser = GatedBrowser(provider)
        engine = make_engine(browser=browser)

        pending = asyncio.create_task(engine.login(m.DanishMitID.substantial()))
        await browser.launched.wait()
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert engine.state is m.FlowState.FAILED

    @pytest.mark.asyncio
    async def test_cancel_while_loading_metadata(
        self, make_engine, make_browser, gated_client, provider
    ):
        gate, client = gated_client(DISCOVERY)
        browser = make_browser(lambda url: "https://app.example.com/callback?code=c&state=s")
        engine = make_engine(browser=browser, http_client=client)

        pending = asyncio.create_task(engine.login(m.DanishMitID.substantial()))
        await until_state(engine, m.FlowState.AWAITING_METADATA)
        engine.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert engine.state is m.FlowState.FAILED
        assert engine.last_error is None

        # The shared load keeps running for the next flow.
        gate.set()
        assert (await engine.key_provider.get_metadata()).issuer
        assert browser.urls == []
        assert provider.calls(PAR) == []
        assert len(provider.calls(DISCOVERY)) == 1

    @pytest.mark.asyncio
    async def test_cancel_while_pushing_request(
        self, make_engine, make_browser, gated_client, provider
    ):
        gate, client = gated_client(PAR)
        browser = make_browser(lambda url: "https://app.example.com/callback?code=c&state=s")
        engine = make_engine(browser=browser, http_client=client)

        pending = asyncio.create_task(engine.login(m.DanishMitID.substantial()))
        await until_state(engine, m.FlowState.REQUEST_PUSHED)
        engine.cancel()
        gate.set()

        with pytest.raises(asyncio.CancelledError):
            await pending
        assert engine.state is m.FlowState.FAILED
        assert not engine._flow.in_progress
        assert browser.urls == []
        assert provider.calls(TOKEN) == []

    @pytest.mark.asyncio
    async def test_cancel_without_flow_is_a_no_op(self, engine):
        engine.cancel()

        assert engine.state is m.FlowState.IDLE
        assert (await engine.login(m.DanishMitID.substantial())).subject


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_redirects_to_end_session(self, make_engine, make_browser, settings):
        def respond(url):
            return f"{settings.redirect_uri}?state={httpx.URL(url).params['state']}"

        browser = make_browser(respond)
        engine = make_engine(browser=browser)

        await engine.logout(id_token_hint="raw.id.token")

        url = httpx.URL(browser.urls[0])
        assert url.path == "/oauth2/logout"
        assert url.params["id_token_hint"] == "raw.id.token"
        assert url.params["post_logout_redirect_uri"] == settings.redirect_uri
        assert url.params["client_id"] == settings.client_id
        assert engine.state is m.FlowState.COMPLETE

    @pytest.mark.asyncio
    async def test_logout_state_mismatch_is_only_logged(self, make_engine, make_browser, caplog):
        engine = make_engine(
            browser=make_browser(lambda url: "https://app.example.com/callback?state=other")
        )
        caplog.set_level(logging.WARNING, logger="eid_verify.flow")

        await engine.logout()

        assert engine.state is m.FlowState.COMPLETE
        assert "does not match" in caplog.text

    @pytest.mark.asyncio
    async def test_logout_without_end_session_endpoint(self, make_engine, make_browser, provider):
        del provider.discovery["end_session_endpoint"]
        browser = make_browser(lambda url: "https://app.example.com/callback")
        engine = make_engine(browser=browser)

        with pytest.raises(m.ConfigurationError):
            await engine.logout()

        assert browser.urls == []

    @pytest.mark.asyncio
    async def test_logout_requires_browser(self, make_engine, provider):
        with pytest.raises(m.NoSuitableBrowser):
            await make_engine(browser=None).logout()
        assert provider.requests == []
