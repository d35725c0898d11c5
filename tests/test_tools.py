import pytest
from mcp.server.fastmcp import FastMCP

from jmap_mcp.capabilities import CapabilityDecision
from jmap_mcp.models import SUBMISSION_CAPABILITY, AccountInfo
from jmap_mcp.tooling import SendEmailInput
from jmap_mcp.tools import register_mail_tools, register_submission_tools, register_tools
from jmap_mcp.tools.mail import build_email_filter, email_item_from_jmap
from jmap_mcp.tools.submission import build_draft, reply_headers, sent_email_patch

pytestmark = pytest.mark.anyio

READ_TOOLS = {"list_mailboxes", "search_emails", "get_emails", "get_threads"}
WRITE_TOOLS = {"mark_emails", "move_emails", "delete_emails"}
SUBMISSION_TOOLS = ["list_identities", "send_email"]


@pytest.fixture
async def client(jmap_server):
    client = jmap_server.client()
    yield client
    await client.aclose()


async def _tool_names(mcp: FastMCP) -> set[str]:
    return {tool.name for tool in await mcp.list_tools()}


def _tool(mcp: FastMCP, name: str):
    return mcp._tool_manager.get_tool(name).fn


async def test_read_only_account_gets_read_only_mail_tools(jmap_server, client):
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=True)
    assert await _tool_names(mcp) == READ_TOOLS


async def test_read_write_account_gets_mutating_mail_tools(jmap_server, client):
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=False)
    assert await _tool_names(mcp) == READ_TOOLS | WRITE_TOOLS


async def test_search_emails_orders_by_query_ids(jmap_server, client):
    jmap_server.on(
        "Email/query",
        lambda args: {"ids": ["e2", "e1"], "position": 0, "total": 2, "queryState": "q"},
    )
    jmap_server.on(
        "Email/get",
        lambda args: {
            "list": [
                {"id": "e1", "subject": "first", "from": [{"name": "Bob", "email": "bob@example.com"}]},
                {"id": "e2", "subject": "second", "keywords": {"$seen": True}},
            ],
            "notFound": [],
        },
    )
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=True)

    result = await _tool(mcp, "search_emails")(query="invoice", unread_only=True, limit=10)

    assert [item.id for item in result.items] == ["e2", "e1"]
    assert result.items[1].from_[0].email == "bob@example.com"
    assert result.items[0].keywords == ["$seen"]
    assert result.total == 2
    assert result.next_position is None
    query_args = jmap_server.api_requests[0]["methodCalls"][0][1]
    assert query_args["filter"] == {"text": "invoice", "notKeyword": "$seen"}
    assert query_args["accountId"] == "acc-1"
    assert query_args["limit"] == 10


async def test_get_emails_joins_body_values(jmap_server, client):
    jmap_server.on(
        "Email/get",
        lambda args: {
            "list": [
                {
                    "id": "e1",
                    "textBody": [{"partId": "1"}],
                    "htmlBody": [{"partId": "2"}],
                    "bodyValues": {"1": {"value": "hello"}, "2": {"value": "<p>hello</p>"}},
                }
            ],
            "notFound": ["missing"],
        },
    )
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=True)

    result = await _tool(mcp, "get_emails")(ids=["e1", "missing"])

    assert result.items[0].text_body == "hello"
    assert result.items[0].html_body == "<p>hello</p>"
    assert result.not_found == ["missing"]
    assert jmap_server.api_requests[0]["methodCalls"][0][1]["fetchTextBodyValues"] is True


async def test_mark_emails_patches_keywords(jmap_server, client):
    jmap_server.on(
        "Email/set",
        lambda args: {
            "updated": {"e1": None},
            "notUpdated": {"e2": {"type": "notFound", "description": "no such email"}},
        },
    )
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=False)

    result = await _tool(mcp, "mark_emails")(ids=["e1", "e2"], seen=True, flagged=False)

    update = jmap_server.api_requests[0]["methodCalls"][0][1]["update"]
    assert update["e1"] == {"keywords/$seen": True, "keywords/$flagged": None}
    assert result.succeeded == ["e1"]
    assert result.failed == {"e2": "no such email"}


async def test_mark_emails_requires_a_change(jmap_server, client):
    mcp = FastMCP("test")
    register_mail_tools(mcp, client, "acc-1", read_only=False)
    with pytest.raises(ValueError):
        await _tool(mcp, "mark_emails")(ids=["e1"])


async def test_submission_tools_registered(jmap_server, client):
    mcp = FastMCP("test")
    register_submission_tools(mcp, client, "acc-1")
    assert await _tool_names(mcp) == {"list_identities", "send_email"}


async def test_send_email_creates_draft_and_submits(jmap_server, client):
    jmap_server.on("Identity/get", lambda args: {"list": [{"id": "id-1", "name": "Alice", "email": "alice@example.com"}]})
    jmap_server.on("Mailbox/query", lambda args: {"ids": [f"mb-{args['filter']['role']}"]})
    jmap_server.on("Email/set", lambda args: {"created": {"draft": {"id": "e9", "threadId": "t9"}}})
    jmap_server.on("EmailSubmission/set", lambda args: {"created": {"send": {"id": "s1"}}})
    mcp = FastMCP("test")
    register_submission_tools(mcp, client, "acc-1")

    result = await _tool(mcp, "send_email")(to=["bob@example.com"], subject="Hi", text_body="Hello Bob")

    assert (result.email_id, result.submission_id, result.thread_id) == ("e9", "s1", "t9")
    final = jmap_server.api_requests[-1]
    assert SUBMISSION_CAPABILITY in final["using"]
    submission = final["methodCalls"][1][1]
    assert submission["create"]["send"] == {"identityId": "id-1", "emailId": "#draft"}
    assert submission["onSuccessUpdateEmail"]["#send"] == {
        "mailboxIds/mb-drafts": None,
        "mailboxIds/mb-sent": True,
        "keywords/$draft": None,
        "keywords/$sent": True,
    }
    draft = final["methodCalls"][0][1]["create"]["draft"]
    assert draft["mailboxIds"] == {"mb-drafts": True}
    roles = [call[1]["filter"]["role"] for call in jmap_server.api_requests[1]["methodCalls"]]
    assert roles == ["drafts", "sent"]


def test_sent_patch_keeps_email_in_a_mailbox():
    mailboxes = {"drafts": True}
    for path, value in sent_email_patch("drafts", None).items():
        if path.startswith("mailboxIds/"):
            mailbox = path.split("/", 1)[1]
            if value is None:
                mailboxes.pop(mailbox, None)
            else:
                mailboxes[mailbox] = value
    assert mailboxes == {"drafts": True}
    assert sent_email_patch("drafts", None)["keywords/$sent"] is True


async def test_register_tools_registers_mail_before_submission_once(jmap_server, client):
    mcp = FastMCP("test")
    account = AccountInfo(identifier="acc-1", is_read_only=False)
    decision = CapabilityDecision(register_mail=True, register_submission=True)

    register_tools(mcp, client, account, decision)

    names = [tool.name for tool in await mcp.list_tools()]
    assert len(names) == len(set(names))
    assert set(names[: -len(SUBMISSION_TOOLS)]) == READ_TOOLS | WRITE_TOOLS
    assert names[-len(SUBMISSION_TOOLS) :] == SUBMISSION_TOOLS


def test_build_email_filter_parses_dates():
    email_filter = build_email_filter(after="2025-05-01", mailbox_id="inbox", flagged_only=True)
    assert email_filter == {"inMailbox": "inbox", "after": "2025-05-01T00:00:00Z", "hasKeyword": "$flagged"}


def test_build_email_filter_rejects_unparseable_dates():
    with pytest.raises(ValueError):
        build_email_filter(before="xyzzy plugh")


def test_email_item_skips_body_unless_requested():
    item = email_item_from_jmap({"id": "e1", "bodyValues": {"1": {"value": "x"}}, "textBody": [{"partId": "1"}]})
    assert item.text_body is None


def test_build_draft_includes_both_bodies():
    payload = SendEmailInput(to=["bob@example.com"], subject="Hi", text_body="plain", html_body="<b>rich</b>")
    draft = build_draft(payload, {"id": "id-1", "email": "alice@example.com"}, "drafts")
    assert draft["from"] == [{"email": "alice@example.com"}]
    assert draft["mailboxIds"] == {"drafts": True}
    assert draft["textBody"] == [{"partId": "text", "type": "text/plain"}]
    assert draft["bodyValues"]["html"] == {"value": "<b>rich</b>"}


def test_send_email_input_requires_a_body():
    with pytest.raises(ValueError):
        SendEmailInput(to=["bob@example.com"], subject="Hi")


def test_reply_headers_extend_references():
    headers = reply_headers({"messageId": ["<m2@example.com>"], "references": ["<m1@example.com>"]})
    assert headers == {
        "inReplyTo": ["<m2@example.com>"],
        "references": ["<m1@example.com>", "<m2@example.com>"],
    }
