import httpx
import pytest

import eid_verify as m

CLIENT_ID = "urn:my:application"
REDIRECT_URI = "https://app.example.com/callback"

METADATA = m.ProviderMetadata(
    issuer="https://example.idura.broker",
    authorization_endpoint="https://example.idura.broker/oauth2/authorize",
    token_endpoint="https://example.idura.broker/oauth2/token",
    pushed_authorization_request_endpoint="https://example.idura.broker/oauth2/par",
)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def auth_request() -> m.AuthorizationRequest:
    return m.build_authorization_request(m.DanishMitID.substantial(), CLIENT_ID, REDIRECT_URI)


@pytest.mark.asyncio
async def test_push_posts_form_and_builds_authorization_url():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"request_uri": "urn:req:1", "expires_in": 60})

    request = auth_request()
    pushed = await m.push_authorization_request(client_for(handler), request, METADATA)

    assert seen[0].method == "POST"
    assert str(seen[0].url) == METADATA.pushed_authorization_request_endpoint
    assert seen[0].headers["content-type"] == "application/x-www-form-urlencoded"
    form = dict(httpx.QueryParams(seen[0].content.decode()))
    assert form == request.to_params()

    assert pushed.request_uri == "urn:req:1"
    assert pushed.expires_in == 60
    url = httpx.URL(pushed.authorization_url)
    assert pushed.authorization_url.startswith(METADATA.authorization_endpoint + "?")
    assert dict(url.params) == {"client_id": CLIENT_ID, "request_uri": "urn:req:1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 400, 401, 500])
async def test_anything_but_201_is_rejected(status):
    client = client_for(lambda r: httpx.Response(status, json={"request_uri": "urn:req:1"}))

    with pytest.raises(m.PushRejected) as exc_info:
        await m.push_authorization_request(client, auth_request(), METADATA)

    assert exc_info.value.status_code == status
    assert str(exc_info.value).startswith(f"Error during PAR request {status}")


@pytest.mark.asyncio
async def test_rejection_message_includes_reason_phrase():
    client = client_for(lambda r: httpx.Response(400))

    with pytest.raises(m.PushRejected, match="Error during PAR request 400 Bad Request"):
        await m.push_authorization_request(client, auth_request(), METADATA)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(201, json={}),
        httpx.Response(201, json={"request_uri": ""}),
        httpx.Response(201, content=b"not json"),
    ],
)
async def test_unusable_201_body(response):
    client = client_for(lambda r: response)

    with pytest.raises(m.MalformedResponse):
        await m.push_authorization_request(client, auth_request(), METADATA)


@pytest.mark.asyncio
async def test_network_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(m.TransportError):
        await m.push_authorization_request(client_for(handler), auth_request(), METADATA)
