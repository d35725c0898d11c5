import httpx
import pytest

from jmap_mcp.client import JMAPClient, method_result
from jmap_mcp.exceptions import JMAPMethodError, JMAPRequestError
from jmap_mcp.models import CORE_CAPABILITY, MAIL_CAPABILITY, MethodResponse

from .conftest import SESSION_URL, TOKEN, build_session

pytestmark = pytest.mark.anyio


async def test_request_posts_using_and_method_calls(jmap_server):
    jmap_server.on("Mailbox/get", lambda args: {"accountId": args["accountId"], "list": [], "notFound": []})
    client = jmap_server.client()
    responses = await client.request([["Mailbox/get", {"accountId": "acc-1"}, "m1"]])
    assert jmap_server.api_requests[0]["using"] == [CORE_CAPABILITY, MAIL_CAPABILITY]
    assert jmap_server.api_requests[0]["methodCalls"] == [["Mailbox/get", {"accountId": "acc-1"}, "m1"]]
    assert method_result(responses, "Mailbox/get", "m1")["list"] == []
    await client.aclose()


async def test_method_error_is_raised_on_unwrap(jmap_server):
    jmap_server.on("Email/get", lambda args: ("error", {"type": "accountNotFound"}))
    client = jmap_server.client()
    responses = await client.request([["Email/get", {"accountId": "x"}, "e1"]])
    with pytest.raises(JMAPMethodError) as excinfo:
        method_result(responses, "Email/get", "e1")
    assert excinfo.value.error_type == "accountNotFound"
    await client.aclose()


def test_method_result_requires_matching_call_id():
    responses = [MethodResponse.from_wire(["Email/get", {"list": []}, "a"])]
    with pytest.raises(JMAPRequestError):
        method_result(responses, "Email/get", "b")


async def test_http_error_from_api_is_request_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=build_session())
        return httpx.Response(500, text="boom")

    client = JMAPClient(SESSION_URL, TOKEN, transport=httpx.MockTransport(handler))
    with pytest.raises(JMAPRequestError) as excinfo:
        await client.request([["Mailbox/get", {}, "m"]])
    assert "500" in str(excinfo.value)
    await client.aclose()


async def test_read_only_batches_retry_transport_errors():
    attempts = {"post": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=build_session())
        attempts["post"] += 1
        if attempts["post"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"methodResponses": [["Mailbox/get", {"list": []}, "m"]]})

    client = JMAPClient(SESSION_URL, TOKEN, transport=httpx.MockTransport(handler))
    responses = await client.request([["Mailbox/get", {}, "m"]], retry=True)
    assert attempts["post"] == 2
    assert responses[0].name == "Mailbox/get"
    await client.aclose()


async def test_mutating_batches_are_not_retried():
    attempts = {"post": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=build_session())
        attempts["post"] += 1
        raise httpx.ConnectError("connection reset", request=request)

    client = JMAPClient(SESSION_URL, TOKEN, transport=httpx.MockTransport(handler))
    with pytest.raises(JMAPRequestError):
        await client.request([["Email/set", {}, "s"]])
    assert attempts["post"] == 1
    await client.aclose()
