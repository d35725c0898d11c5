"""Email submission tools backed by the JMAP submission capability."""

from __future__ import annotations

from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import Field

from ..client import JMAPClient, method_result
from ..exceptions import JMAPMethodError
from ..models import CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY
from ..tooling import (
    IdentityItem,
    ListIdentitiesResult,
    SendEmailInput,
    SendEmailResult,
    contacts_from_jmap,
)

logger = get_logger(__name__)

SUBMISSION_USING = [CORE_CAPABILITY, MAIL_CAPABILITY, SUBMISSION_CAPABILITY]


def register_submission_tools(mcp: FastMCP, client: JMAPClient, account_id: str) -> None:
    """Register tools that send email through EmailSubmission."""

    async def _identities() -> list[dict[str, Any]]:
        responses = await client.request(
            [["Identity/get", {"accountId": account_id, "ids": None}, "identities"]],
            using=SUBMISSION_USING,
            retry=True,
        )
        return method_result(responses, "Identity/get", "identities").get("list", [])

    @mcp.tool(
        name="list_identities",
        description="List the sending identities (From addresses) available to the account.",
        structured_output=True,
    )
    async def list_identities() -> ListIdentitiesResult:
        identities = await _identities()
        return ListIdentitiesResult(
            items=[
                IdentityItem(
                    id=entry["id"],
                    name=entry.get("name") or None,
                    email=entry["email"],
                    reply_to=contacts_from_jmap(entry.get("replyTo")),
                )
                for entry in identities
            ]
        )

    @mcp.tool(
        name="send_email",
        description=(
            "Compose and send an email. Provide a text and/or HTML body. "
            "Set in_reply_to_email_id to send a threaded reply to an existing email."
        ),
        structured_output=True,
    )
    async def send_email(
        to: Annotated[list[str], Field(min_length=1, description="Recipient addresses.")],
        subject: Annotated[str, Field(min_length=1, description="Subject line.")],
        text_body: Annotated[str | None, Field(description="Plain text body.")] = None,
        html_body: Annotated[str | None, Field(description="HTML body.")] = None,
        cc: Annotated[list[str] | None, Field(description="Carbon copy recipients.")] = None,
        bcc: Annotated[list[str] | None, Field(description="Blind carbon copy recipients.")] = None,
        identity_id: Annotated[
            str | None, Field(description="Identity to send from (see list_identities). Defaults to the first one.")
        ] = None,
        in_reply_to_email_id: Annotated[str | None, Field(description="Email id this message replies to.")] = None,
    ) -> SendEmailResult:
        payload = SendEmailInput(
            to=to,
            subject=subject,
            text_body=text_body,
            html_body=html_body,
            cc=cc or [],
            bcc=bcc or [],
            identity_id=identity_id,
            in_reply_to_email_id=in_reply_to_email_id,
        )

        identity = _select_identity(await _identities(), payload.identity_id)
        drafts_id, sent_id = await _drafts_and_sent_mailbox_ids()
        draft = build_draft(payload, identity, drafts_id)
        if payload.in_reply_to_email_id:
            draft.update(await _reply_headers(payload.in_reply_to_email_id))

        responses = await client.request(
            [
                ["Email/set", {"accountId": account_id, "create": {"draft": draft}}, "create"],
                [
                    "EmailSubmission/set",
                    {
                        "accountId": account_id,
                        "create": {"send": {"identityId": identity["id"], "emailId": "#draft"}},
                        "onSuccessUpdateEmail": {"#send": sent_email_patch(drafts_id, sent_id)},
                    },
                    "submit",
                ],
            ],
            using=SUBMISSION_USING,
        )

        created = method_result(responses, "Email/set", "create")
        email = (created.get("created") or {}).get("draft")
        if email is None:
            raise JMAPMethodError("Email/set", *_first_set_error(created.get("notCreated")))
        submitted = method_result(responses, "EmailSubmission/set", "submit")
        submission = (submitted.get("created") or {}).get("send")
        if submission is None:
            raise JMAPMethodError("EmailSubmission/set", *_first_set_error(submitted.get("notCreated")))

        logger.info("Submitted email %s (submission %s)", email["id"], submission["id"])
        return SendEmailResult(
            email_id=email["id"],
            submission_id=submission["id"],
            thread_id=email.get("threadId"),
        )

    async def _drafts_and_sent_mailbox_ids() -> tuple[str, str | None]:
        responses = await client.request(
            [
                ["Mailbox/query", {"accountId": account_id, "filter": {"role": "drafts"}}, "drafts"],
                ["Mailbox/query", {"accountId": account_id, "filter": {"role": "sent"}}, "sent"],
            ],
            retry=True,
        )
        drafts = method_result(responses, "Mailbox/query", "drafts").get("ids", [])
        if not drafts:
            raise ValueError("Could not find a mailbox with the drafts role")
        sent = method_result(responses, "Mailbox/query", "sent").get("ids", [])
        if not sent:
            logger.warning("No mailbox with the sent role; sent emails stay in the drafts mailbox")
        return drafts[0], (sent[0] if sent else None)

    async def _reply_headers(email_id: str) -> dict[str, Any]:
        responses = await client.request(
            [
                [
                    "Email/get",
                    {"accountId": account_id, "ids": [email_id], "properties": ["messageId", "references"]},
                    "original",
                ]
            ],
            retry=True,
        )
        found = method_result(responses, "Email/get", "original").get("list", [])
        if not found:
            raise ValueError(f"Email {email_id} to reply to was not found")
        return reply_headers(found[0])


def build_draft(payload: SendEmailInput, identity: dict[str, Any], drafts_id: str) -> dict[str, Any]:
    """Build the Email/set create object for an outgoing message."""

    sender: dict[str, Any] = {"email": identity["email"]}
    if identity.get("name"):
        sender["name"] = identity["name"]
    draft: dict[str, Any] = {
        "mailboxIds": {drafts_id: True},
        "keywords": {"$draft": True, "$seen": True},
        "from": [sender],
        "to": [{"email": address} for address in payload.to],
        "subject": payload.subject,
        "bodyValues": {},
    }
    if payload.cc:
        draft["cc"] = [{"email": address} for address in payload.cc]
    if payload.bcc:
        draft["bcc"] = [{"email": address} for address in payload.bcc]
    if payload.text_body:
        draft["bodyValues"]["text"] = {"value": payload.text_body}
        draft["textBody"] = [{"partId": "text", "type": "text/plain"}]
    if payload.html_body:
        draft["bodyValues"]["html"] = {"value": payload.html_body}
        draft["htmlBody"] = [{"partId": "html", "type": "text/html"}]
    return draft


def sent_email_patch(drafts_id: str, sent_id: str | None) -> dict[str, Any]:
    """Patch applied to a submitted draft: file it in the sent mailbox and mark it sent.

    An Email must stay in at least one mailbox, so without a sent mailbox it
    remains in drafts.
    """
    patch: dict[str, Any] = {"keywords/$draft": None, "keywords/$sent": True}
    if sent_id is not None and sent_id != drafts_id:
        patch[f"mailboxIds/{drafts_id}"] = None
        patch[f"mailboxIds/{sent_id}"] = True
    return patch


def reply_headers(original: dict[str, Any]) -> dict[str, Any]:
    message_ids = original.get("messageId") or []
    if not message_ids:
        return {}
    references = list(original.get("references") or [])
    references.extend(message_ids)
    return {"inReplyTo": message_ids, "references": references}


def _select_identity(identities: list[dict[str, Any]], identity_id: str | None) -> dict[str, Any]:
    if not identities:
        raise ValueError("No sending identity is configured for this account")
    if identity_id is None:
        return identities[0]
    for identity in identities:
        if identity["id"] == identity_id:
            return identity
    raise ValueError(f"Identity {identity_id} not found")


def _first_set_error(errors: dict[str, Any] | None) -> tuple[str, str | None]:
    for error in (errors or {}).values():
        return error.get("type", "serverFail"), error.get("description")
    return "serverFail", None
