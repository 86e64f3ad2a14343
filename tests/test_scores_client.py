import httpx
import pytest

from quizboard.client.errors import AuthenticationError, TransientFetchError
from quizboard.client.scores_client import ScoresClient


def make_client(handler) -> ScoresClient:
    transport = httpx.MockTransport(handler)
    return ScoresClient(client=httpx.AsyncClient(transport=transport, base_url="http://test"))


async def test_fetch_grid_sends_sheet_id_and_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["sheet"] = request.url.params["sheetId"]
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"data": [["Team Names", "A"], ["1", 2]]})

    client = make_client(handler)
    grid = await client.fetch_grid("abc", "tok-123")
    await client.close()

    assert seen == {"path": "/api/scores", "sheet": "abc", "auth": "Bearer tok-123"}
    assert grid == [["Team Names", "A"], ["1", "2"]]


async def test_missing_data_key_is_an_empty_grid():
    client = make_client(lambda request: httpx.Response(200, json={}))
    assert await client.fetch_grid("abc", "tok") == []


@pytest.mark.parametrize(
    "status, body, code",
    [
        (401, {"error": "Unauthorized"}, None),
        (401, {"error": "expired", "code": "AUTH_EXPIRED"}, "AUTH_EXPIRED"),
        (403, {"error": "Forbidden"}, None),
        (500, {"error": "expired", "code": "AUTH_EXPIRED"}, "AUTH_EXPIRED"),
    ],
)
async def test_auth_failures(status, body, code):
    client = make_client(lambda request: httpx.Response(status, json=body))
    with pytest.raises(AuthenticationError) as excinfo:
        await client.fetch_grid("abc", "tok")
    assert excinfo.value.code == code


@pytest.mark.parametrize("status", [400, 500, 502])
async def test_other_failures_are_transient(status):
    client = make_client(lambda request: httpx.Response(status, json={"error": "boom"}))
    with pytest.raises(TransientFetchError) as excinfo:
        await client.fetch_grid("abc", "tok")
    assert excinfo.value.status_code == status
    assert str(excinfo.value) == "boom"


async def test_non_json_error_body_uses_default_message():
    client = make_client(lambda request: httpx.Response(500, text="<html>oops</html>"))
    with pytest.raises(TransientFetchError, match="Failed to fetch sheet data"):
        await client.fetch_grid("abc", "tok")


async def test_network_errors_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(TransientFetchError):
        await client.fetch_grid("abc", "tok")


async def test_malformed_success_payload_is_transient():
    client = make_client(lambda request: httpx.Response(200, json={"data": "nope"}))
    with pytest.raises(TransientFetchError):
        await client.fetch_grid("abc", "tok")


async def test_session_status_reports_expiry():
    client = make_client(
        lambda request: httpx.Response(401, json={"authenticated": False, "code": "AUTH_EXPIRED"})
    )
    status = await client.session_status("tok")
    assert status.authenticated is False
    assert status.code == "AUTH_EXPIRED"


async def test_session_status_authenticated():
    client = make_client(
        lambda request: httpx.Response(
            200, json={"authenticated": True, "user": {"email": "quiz@example.com"}}
        )
    )
    status = await client.session_status("tok")
    assert status.authenticated is True
    assert status.user.email == "quiz@example.com"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>proxy login</html>"),
        httpx.Response(200, json={"authenticated": "maybe"}),
    ],
)
async def test_malformed_session_status_is_transient(response):
    client = make_client(lambda request: response)
    with pytest.raises(TransientFetchError):
        await client.session_status("tok")
