"""Pydantic models describing tool inputs and outputs for MCP tools."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MailContact(BaseModel):
    """Simple representation of a mailbox participant."""

    model_config = ConfigDict(
        title="Mail Contact",
        json_schema_extra={
            "examples": [
                {"name": "Alice Example", "email": "alice@example.com"},
                {"email": "notifications@example.com"},
            ]
        },
    )

    name: str | None = Field(default=None, description="Display name when present.")
    email: str = Field(description="Email address.")


class MailboxItem(BaseModel):
    """A JMAP mailbox visible to the account."""

    id: str = Field(description="Mailbox identifier, usable as `mailbox_id` in other tools.")
    name: str = Field(description="Mailbox display name.")
    parent_id: str | None = Field(default=None, description="Parent mailbox identifier for nested mailboxes.")
    role: str | None = Field(default=None, description="Mailbox role such as inbox, sent, drafts or trash.")
    total_emails: int | None = Field(default=None, description="Number of emails in the mailbox.")
    unread_emails: int | None = Field(default=None, description="Number of unread emails in the mailbox.")


class ListMailboxesResult(BaseModel):
    items: list[MailboxItem] = Field(default_factory=list, description="Mailboxes of the account.")


class EmailItem(BaseModel):
    """Email metadata and, when requested, body content."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Email identifier.")
    thread_id: str | None = Field(default=None, description="Thread identifier, usable with get_threads.")
    mailbox_ids: list[str] = Field(default_factory=list, description="Mailboxes containing the email.")
    keywords: list[str] = Field(default_factory=list, description="Keywords set on the email (e.g. $seen).")
    from_: list[MailContact] = Field(default_factory=list, alias="from", description="Sender addresses.")
    to: list[MailContact] = Field(default_factory=list, description="Primary recipient list.")
    cc: list[MailContact] = Field(default_factory=list, description="Carbon copy recipients.")
    bcc: list[MailContact] = Field(default_factory=list, description="Blind carbon copy recipients.")
    reply_to: list[MailContact] = Field(default_factory=list, description="Reply-To addresses if provided.")
    subject: str | None = Field(default=None, description="Email subject.")
    received_at: str | None = Field(default=None, description="Delivery timestamp in ISO-8601 format.")
    sent_at: str | None = Field(default=None, description="Sent timestamp from the Date header.")
    preview: str | None = Field(default=None, description="Short preview of the body content.")
    has_attachment: bool | None = Field(default=None, description="True when the email has attachments.")
    size: int | None = Field(default=None, description="Size of the raw message in bytes.")
    text_body: str | None = Field(default=None, description="Plain text body when bodies were requested.")
    html_body: str | None = Field(default=None, description="HTML body when bodies were requested.")


class SearchEmailsResult(BaseModel):
    items: list[EmailItem] = Field(default_factory=list, description="Matching emails, newest first.")
    total: int | None = Field(default=None, description="Total number of matches when reported by the server.")
    position: int = Field(default=0, description="Zero-based index of the first returned match.")
    next_position: int | None = Field(
        default=None, description="Position to request for the next page, or null when there are no more results."
    )


class GetEmailsResult(BaseModel):
    items: list[EmailItem] = Field(default_factory=list, description="Fetched emails.")
    not_found: list[str] = Field(default_factory=list, description="Requested ids that do not exist.")


class ThreadItem(BaseModel):
    id: str = Field(description="Thread identifier.")
    email_ids: list[str] = Field(default_factory=list, description="Emails in the thread, oldest first.")


class GetThreadsResult(BaseModel):
    items: list[ThreadItem] = Field(default_factory=list, description="Fetched threads.")
    not_found: list[str] = Field(default_factory=list, description="Requested ids that do not exist.")


class EmailChangeResult(BaseModel):
    """Outcome of an Email/set update or destroy."""

    succeeded: list[str] = Field(default_factory=list, description="Email ids that were changed.")
    failed: dict[str, str] = Field(
        default_factory=dict, description="Email ids that could not be changed, mapped to the server's reason."
    )


class IdentityItem(BaseModel):
    id: str = Field(description="Identity identifier, usable as `identity_id` with send_email.")
    name: str | None = Field(default=None, description="Display name used in the From header.")
    email: str = Field(description="Sender address of the identity.")
    reply_to: list[MailContact] = Field(default_factory=list, description="Default Reply-To addresses.")


class ListIdentitiesResult(BaseModel):
    items: list[IdentityItem] = Field(default_factory=list, description="Sending identities of the account.")


class SendEmailInput(BaseModel):
    """Validated request payload for the send_email tool."""

    to: list[str] = Field(min_length=1, description="Recipient addresses.")
    subject: str = Field(min_length=1, description="Subject line.")
    text_body: str | None = Field(default=None, description="Plain text body.")
    html_body: str | None = Field(default=None, description="HTML body.")
    cc: list[str] = Field(default_factory=list, description="Carbon copy recipients.")
    bcc: list[str] = Field(default_factory=list, description="Blind carbon copy recipients.")
    identity_id: str | None = Field(default=None, description="Identity to send from.")
    in_reply_to_email_id: str | None = Field(default=None, description="Email being replied to.")

    @model_validator(mode="after")
    def _require_body(self) -> "SendEmailInput":
        if not self.text_body and not self.html_body:
            raise ValueError("text_body or html_body is required")
        return self


class SendEmailResult(BaseModel):
    email_id: str = Field(description="Identifier of the sent email.")
    submission_id: str = Field(description="Identifier of the EmailSubmission object.")
    thread_id: str | None = Field(default=None, description="Thread the sent email belongs to.")


def contacts_from_jmap(addresses: list[dict[str, Any]] | None) -> list[MailContact]:
    if not addresses:
        return []
    return [MailContact(name=entry.get("name") or None, email=entry.get("email", "")) for entry in addresses]
