import json
from typing import Any, Callable

import httpx
import pytest

from jmap_mcp.client import JMAPClient
from jmap_mcp.models import CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY

SESSION_URL = "https://jmap.example.com/.well-known/jmap"
API_URL = "https://jmap.example.com/api/"
TOKEN = "secret-token"


@pytest.fixture
def anyio_backend():
    return "asyncio"


def build_session(
    *,
    capabilities: tuple[str, ...] = (CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY),
    read_only: bool = False,
    account_id: str = "acc-1",
    primary: bool = True,
) -> dict[str, Any]:
    return {
        "capabilities": {urn: {} for urn in capabilities},
        "accounts": {
            account_id: {
                "name": "alice@example.com",
                "isPersonal": True,
                "isReadOnly": read_only,
                "accountCapabilities": {urn: {} for urn in capabilities if urn != CORE_CAPABILITY},
            }
        },
        "primaryAccounts": {MAIL_CAPABILITY: account_id} if primary and MAIL_CAPABILITY in capabilities else {},
        "username": "alice@example.com",
        "apiUrl": API_URL,
        "downloadUrl": "https://jmap.example.com/download/{accountId}/{blobId}/{name}?type={type}",
        "uploadUrl": "https://jmap.example.com/upload/{accountId}/",
        "eventSourceUrl": "https://jmap.example.com/events/",
        "state": "session-1",
    }


class FakeJMAPServer:
    """In-memory JMAP server answering through ``httpx.MockTransport``."""

    def __init__(self, session: dict[str, Any] | None = None, session_status: int = 200) -> None:
        self.session = session if session is not None else build_session()
        self.session_status = session_status
        self.session_fetches = 0
        self.api_requests: list[dict[str, Any]] = []
        self.handlers: dict[str, Callable[[dict[str, Any]], tuple[str, dict[str, Any]] | dict[str, Any]]] = {}

    def on(self, method: str, handler: Callable[[dict[str, Any]], Any]) -> None:
        self.handlers[method] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/.well-known/jmap":
            self.session_fetches += 1
            assert request.headers["Authorization"] == f"Bearer {TOKEN}"
            return httpx.Response(self.session_status, json=self.session)
        if request.url.path == "/api/":
            body = json.loads(request.content)
            self.api_requests.append(body)
            responses = []
            for name, arguments, call_id in body["methodCalls"]:
                result = self.handlers[name](arguments)
                if isinstance(result, tuple):
                    responses.append([result[0], result[1], call_id])
                else:
                    responses.append([name, result, call_id])
            return httpx.Response(200, json={"methodResponses": responses, "sessionState": "session-1"})
        return httpx.Response(404)

    def client(self) -> JMAPClient:
        return JMAPClient(SESSION_URL, TOKEN, transport=httpx.MockTransport(self.handle))

    def client_factory(self, session_url: str, bearer_token: str) -> JMAPClient:
        assert session_url == SESSION_URL
        assert bearer_token == TOKEN
        return self.client()


@pytest.fixture
def jmap_server() -> FakeJMAPServer:
    return FakeJMAPServer()
