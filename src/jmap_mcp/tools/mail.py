"""Mail tools backed by the JMAP mail capability."""

from __future__ import annotations

from datetime import UTC
from typing import Annotated, Any

from dateparser import parse as parse_datetime
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import Field

from ..client import JMAPClient, method_result
from ..tooling import (
    EmailChangeResult,
    EmailItem,
    GetEmailsResult,
    GetThreadsResult,
    ListMailboxesResult,
    MailboxItem,
    SearchEmailsResult,
    ThreadItem,
    contacts_from_jmap,
)

logger = get_logger(__name__)

DEFAULT_SEARCH_LIMIT = 25
MAXIMUM_SEARCH_LIMIT = 100

EMAIL_SUMMARY_PROPERTIES = [
    "id",
    "threadId",
    "mailboxIds",
    "keywords",
    "from",
    "to",
    "cc",
    "bcc",
    "replyTo",
    "subject",
    "receivedAt",
    "sentAt",
    "preview",
    "hasAttachment",
    "size",
]
EMAIL_BODY_PROPERTIES = ["textBody", "htmlBody", "bodyValues"]


def register_mail_tools(mcp: FastMCP, client: JMAPClient, account_id: str, read_only: bool) -> None:
    """Register mail tools; mutating tools are only added for read-write accounts."""

    @mcp.tool(
        name="list_mailboxes",
        description="List the mailboxes (folders) of the mail account with their roles and counts.",
        structured_output=True,
    )
    async def list_mailboxes() -> ListMailboxesResult:
        responses = await client.request(
            [["Mailbox/get", {"accountId": account_id, "ids": None}, "mailboxes"]],
            retry=True,
        )
        result = method_result(responses, "Mailbox/get", "mailboxes")
        items = [
            MailboxItem(
                id=entry["id"],
                name=entry.get("name", entry["id"]),
                parent_id=entry.get("parentId"),
                role=entry.get("role"),
                total_emails=entry.get("totalEmails"),
                unread_emails=entry.get("unreadEmails"),
            )
            for entry in result.get("list", [])
        ]
        return ListMailboxesResult(items=items)

    @mcp.tool(
        name="search_emails",
        description=(
            "Search emails in the account, newest first. All filters are optional; "
            "leave them empty to list the most recent emails."
        ),
        structured_output=True,
    )
    async def search_emails(
        query: Annotated[str | None, Field(description="Free text matched against headers and body.")] = None,
        mailbox_id: Annotated[str | None, Field(description="Only emails in this mailbox (see list_mailboxes).")] = None,
        sender: Annotated[str | None, Field(description="Match the From header.")] = None,
        recipient: Annotated[str | None, Field(description="Match the To header.")] = None,
        subject: Annotated[str | None, Field(description="Match the Subject header.")] = None,
        after: Annotated[
            str | None,
            Field(description='Received on or after (ISO-8601 or natural language such as "last monday").'),
        ] = None,
        before: Annotated[
            str | None, Field(description='Received before (ISO-8601 or natural language such as "yesterday").')
        ] = None,
        unread_only: Annotated[bool, Field(description="Only emails without the $seen keyword.")] = False,
        flagged_only: Annotated[bool, Field(description="Only emails with the $flagged keyword.")] = False,
        limit: Annotated[
            int, Field(ge=1, le=MAXIMUM_SEARCH_LIMIT, description="Maximum number of emails to return.")
        ] = DEFAULT_SEARCH_LIMIT,
        position: Annotated[int, Field(ge=0, description="Zero-based index of the first result (pagination).")] = 0,
    ) -> SearchEmailsResult:
        email_filter = build_email_filter(
            query=query,
            mailbox_id=mailbox_id,
            sender=sender,
            recipient=recipient,
            subject=subject,
            after=after,
            before=before,
            unread_only=unread_only,
            flagged_only=flagged_only,
        )
        responses = await client.request(
            [
                [
                    "Email/query",
                    {
                        "accountId": account_id,
                        "filter": email_filter or None,
                        "sort": [{"property": "receivedAt", "isAscending": False}],
                        "position": position,
                        "limit": limit,
                        "calculateTotal": True,
                    },
                    "query",
                ],
                [
                    "Email/get",
                    {
                        "accountId": account_id,
                        "#ids": {"resultOf": "query", "name": "Email/query", "path": "/ids"},
                        "properties": EMAIL_SUMMARY_PROPERTIES,
                    },
                    "emails",
                ],
            ],
            retry=True,
        )
        query_result = method_result(responses, "Email/query", "query")
        get_result = method_result(responses, "Email/get", "emails")
        by_id = {entry["id"]: entry for entry in get_result.get("list", [])}
        items = [email_item_from_jmap(by_id[email_id]) for email_id in query_result.get("ids", []) if email_id in by_id]

        total = query_result.get("total")
        start = query_result.get("position", position)
        next_position: int | None = start + len(query_result.get("ids", []))
        if not query_result.get("ids") or (total is not None and next_position >= total):
            next_position = None
        return SearchEmailsResult(items=items, total=total, position=start, next_position=next_position)

    @mcp.tool(
        name="get_emails",
        description="Fetch emails by id, optionally including their text and HTML bodies.",
        structured_output=True,
    )
    async def get_emails(
        ids: Annotated[list[str], Field(min_length=1, description="Email ids from search_emails or get_threads.")],
        include_body: Annotated[bool, Field(description="Include text and HTML body content.")] = True,
    ) -> GetEmailsResult:
        arguments: dict[str, Any] = {
            "accountId": account_id,
            "ids": ids,
            "properties": EMAIL_SUMMARY_PROPERTIES + (EMAIL_BODY_PROPERTIES if include_body else []),
        }
        if include_body:
            arguments["fetchTextBodyValues"] = True
            arguments["fetchHTMLBodyValues"] = True
        responses = await client.request([["Email/get", arguments, "emails"]], retry=True)
        result = method_result(responses, "Email/get", "emails")
        return GetEmailsResult(
            items=[email_item_from_jmap(entry, include_body=include_body) for entry in result.get("list", [])],
            not_found=result.get("notFound") or [],
        )

    @mcp.tool(
        name="get_threads",
        description="Fetch threads by id, returning the ids of the emails in each thread.",
        structured_output=True,
    )
    async def get_threads(
        ids: Annotated[list[str], Field(min_length=1, description="Thread ids (`thread_id` of an email).")],
    ) -> GetThreadsResult:
        responses = await client.request(
            [["Thread/get", {"accountId": account_id, "ids": ids}, "threads"]],
            retry=True,
        )
        result = method_result(responses, "Thread/get", "threads")
        return GetThreadsResult(
            items=[ThreadItem(id=entry["id"], email_ids=entry.get("emailIds", [])) for entry in result.get("list", [])],
            not_found=result.get("notFound") or [],
        )

    if read_only:
        logger.info("Account %s is read-only; mail tools that modify emails are not registered", account_id)
        return

    async def _update(updates: dict[str, dict[str, Any]]) -> EmailChangeResult:
        responses = await client.request([["Email/set", {"accountId": account_id, "update": updates}, "update"]])
        result = method_result(responses, "Email/set", "update")
        return EmailChangeResult(
            succeeded=list((result.get("updated") or {}).keys()),
            failed=_set_errors(result.get("notUpdated")),
        )

    @mcp.tool(
        name="mark_emails",
        description="Mark emails as read/unread and/or flagged/unflagged.",
        structured_output=True,
    )
    async def mark_emails(
        ids: Annotated[list[str], Field(min_length=1, description="Email ids to change.")],
        seen: Annotated[bool | None, Field(description="True marks read, false marks unread.")] = None,
        flagged: Annotated[bool | None, Field(description="True flags, false removes the flag.")] = None,
    ) -> EmailChangeResult:
        patch: dict[str, Any] = {}
        if seen is not None:
            patch["keywords/$seen"] = True if seen else None
        if flagged is not None:
            patch["keywords/$flagged"] = True if flagged else None
        if not patch:
            raise ValueError("At least one of seen or flagged must be provided")
        return await _update({email_id: dict(patch) for email_id in ids})

    @mcp.tool(
        name="move_emails",
        description="Move emails into a single target mailbox, removing them from their current mailboxes.",
        structured_output=True,
    )
    async def move_emails(
        ids: Annotated[list[str], Field(min_length=1, description="Email ids to move.")],
        mailbox_id: Annotated[str, Field(description="Target mailbox id (see list_mailboxes).")],
    ) -> EmailChangeResult:
        return await _update({email_id: {"mailboxIds": {mailbox_id: True}} for email_id in ids})

    @mcp.tool(
        name="delete_emails",
        description="Permanently delete emails. To keep a copy, move them to the trash mailbox instead.",
        structured_output=True,
    )
    async def delete_emails(
        ids: Annotated[list[str], Field(min_length=1, description="Email ids to destroy.")],
    ) -> EmailChangeResult:
        responses = await client.request([["Email/set", {"accountId": account_id, "destroy": ids}, "destroy"]])
        result = method_result(responses, "Email/set", "destroy")
        return EmailChangeResult(
            succeeded=result.get("destroyed") or [],
            failed=_set_errors(result.get("notDestroyed")),
        )


def build_email_filter(
    *,
    query: str | None = None,
    mailbox_id: str | None = None,
    sender: str | None = None,
    recipient: str | None = None,
    subject: str | None = None,
    after: str | None = None,
    before: str | None = None,
    unread_only: bool = False,
    flagged_only: bool = False,
) -> dict[str, Any]:
    """Build a JMAP Email/query FilterCondition from tool arguments."""

    email_filter: dict[str, Any] = {}
    if query:
        email_filter["text"] = query
    if mailbox_id:
        email_filter["inMailbox"] = mailbox_id
    if sender:
        email_filter["from"] = sender
    if recipient:
        email_filter["to"] = recipient
    if subject:
        email_filter["subject"] = subject
    if after:
        email_filter["after"] = _utc_date(after)
    if before:
        email_filter["before"] = _utc_date(before)
    if unread_only:
        email_filter["notKeyword"] = "$seen"
    if flagged_only:
        email_filter["hasKeyword"] = "$flagged"
    return email_filter


def email_item_from_jmap(entry: dict[str, Any], include_body: bool = False) -> EmailItem:
    text_body = html_body = None
    if include_body:
        values = entry.get("bodyValues") or {}
        text_body = _join_parts(entry.get("textBody"), values)
        html_body = _join_parts(entry.get("htmlBody"), values)
    return EmailItem(
        id=entry["id"],
        thread_id=entry.get("threadId"),
        mailbox_ids=[mailbox for mailbox, present in (entry.get("mailboxIds") or {}).items() if present],
        keywords=[keyword for keyword, present in (entry.get("keywords") or {}).items() if present],
        from_=contacts_from_jmap(entry.get("from")),
        to=contacts_from_jmap(entry.get("to")),
        cc=contacts_from_jmap(entry.get("cc")),
        bcc=contacts_from_jmap(entry.get("bcc")),
        reply_to=contacts_from_jmap(entry.get("replyTo")),
        subject=entry.get("subject"),
        received_at=entry.get("receivedAt"),
        sent_at=entry.get("sentAt"),
        preview=entry.get("preview"),
        has_attachment=entry.get("hasAttachment"),
        size=entry.get("size"),
        text_body=text_body,
        html_body=html_body,
    )


def _join_parts(parts: list[dict[str, Any]] | None, values: dict[str, Any]) -> str | None:
    chunks = [values[part["partId"]]["value"] for part in parts or [] if part.get("partId") in values]
    return "\n".join(chunks) if chunks else None


def _utc_date(value: str) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Unable to parse date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _set_errors(errors: dict[str, Any] | None) -> dict[str, str]:
    if not errors:
        return {}
    return {
        email_id: error.get("description") or error.get("type", "unknown error")
        for email_id, error in errors.items()
    }
