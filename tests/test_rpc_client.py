import json
from types import SimpleNamespace

import httpx
import pytest

from autocrm.core.errors import RpcError
from autocrm.rpc.client import NETWORK_ERROR, RpcClient, authorization_header


def test_authorization_header_without_session():
    assert authorization_header(None) == ""
    assert authorization_header({"access_token": None}) == ""


def test_authorization_header_with_session():
    assert authorization_header(SimpleNamespace(access_token="T")) == "Bearer T"
    assert authorization_header({"access_token": "T"}) == "Bearer T"


class Recorder:
    def __init__(self, responder):
        self.requests = []
        self.responder = responder

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def _ok(data):
    return lambda request: httpx.Response(200, json={"result": {"data": data}})


async def test_query_sends_empty_authorization_when_signed_out():
    recorder = Recorder(_ok([]))
    async with RpcClient("http://api.test/trpc", session_provider=lambda: None,
                         transport=httpx.MockTransport(recorder)) as client:
        assert await client.query("getOrganizations") == []
    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/trpc/getOrganizations"
    assert request.headers["Authorization"] == ""


async def test_mutation_sends_bearer_token_from_async_session_provider():
    async def session():
        return SimpleNamespace(access_token="T")

    recorder = Recorder(_ok({"id": "o1", "name": "Acme"}))
    async with RpcClient("http://api.test/trpc/", session_provider=session,
                         transport=httpx.MockTransport(recorder)) as client:
        result = await client.mutate("createOrganization", {"name": "Acme"})
    assert result["name"] == "Acme"
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["Authorization"] == "Bearer T"
    assert json.loads(request.content) == {"name": "Acme"}


async def test_query_input_travels_as_json_parameter():
    recorder = Recorder(_ok([]))
    async with RpcClient("http://api.test/trpc", transport=httpx.MockTransport(recorder)) as client:
        await client.query("getTickets", {"organization_id": "o1"})
    assert json.loads(recorder.requests[0].url.params["input"]) == {"organization_id": "o1"}


async def test_error_carries_code_and_message():
    def forbidden(request):
        return httpx.Response(403, json={"error": {"code": "FORBIDDEN", "message": "You are not a member of this organization"}})

    async with RpcClient("http://api.test/trpc", transport=httpx.MockTransport(forbidden)) as client:
        with pytest.raises(RpcError) as exc:
            await client.query("getTickets", {"organization_id": "o1"})
    assert exc.value.code == "FORBIDDEN"
    assert exc.value.message == "You are not a member of this organization"


async def test_transport_failure_is_not_retried():
    calls = []

    def broken(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with RpcClient("http://api.test/trpc", transport=httpx.MockTransport(broken)) as client:
        with pytest.raises(RpcError) as exc:
            await client.query("getProfile")
    assert exc.value.code == NETWORK_ERROR
    assert len(calls) == 1


async def test_batch_returns_errors_in_place():
    def respond(request):
        calls = json.loads(request.content)
        assert [c["procedure"] for c in calls] == ["getTicket", "getTicketComments"]
        return httpx.Response(200, json=[
            {"id": 1, "result": {"data": []}},
            {"id": 0, "error": {"code": "NOT_FOUND", "message": "Ticket not found"}},
        ])

    async with RpcClient("http://api.test/trpc", transport=httpx.MockTransport(respond)) as client:
        ticket, comments = await client.batch([
            ("getTicket", {"ticket_id": "t"}),
            ("getTicketComments", {"ticket_id": "t"}),
        ])
    assert isinstance(ticket, RpcError) and ticket.code == "NOT_FOUND"
    assert comments == []


async def test_client_against_the_app(app, make_user):
    user = make_user("ada")
    transport = httpx.ASGITransport(app=app)
    async with RpcClient("http://testserver/trpc", session_provider=lambda: {"access_token": user.token},
                         transport=transport) as client:
        created = await client.mutate("createOrganization", {"name": "Acme"})
        organizations = await client.query("getOrganizations")
    assert organizations[0]["id"] == created["id"]
    assert organizations[0]["role"] == "admin"


async def test_non_json_success_body_raises_rpc_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))
    async with RpcClient("http://api.test/trpc", transport=transport) as client:
        with pytest.raises(RpcError) as exc:
            await client.query("getOrganizations")
        assert exc.value.message == "Malformed response from server"
        with pytest.raises(RpcError):
            await client.mutate("createOrganization", {"name": "Acme"})
        with pytest.raises(RpcError):
            await client.batch([("getOrganizations", None)])
