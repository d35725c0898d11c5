"""Decide which tool groups the negotiated account can support."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import MailUnsupportedError
from .models import MAIL_CAPABILITY, SUBMISSION_CAPABILITY, AccountInfo, ServerSession


class CapabilityDecision(BaseModel):
    """Tool groups to register for the active account."""

    model_config = ConfigDict(frozen=True)

    register_mail: bool = Field(description="Register the mail tool group.")
    register_submission: bool = Field(description="Register the submission tool group.")
    submission_notice: str | None = Field(
        default=None, description="Why submission tools are unavailable, when they are not registered."
    )


def decide(session: ServerSession, account: AccountInfo) -> CapabilityDecision:
    """Return the tool groups to expose for ``account`` on ``session``.

    The mail capability is mandatory. Submission requires both the
    submission capability and a read-write account; otherwise it is left
    out and the reason recorded on the decision.
    """

    if not session.supports(MAIL_CAPABILITY):
        raise MailUnsupportedError(MAIL_CAPABILITY)

    reasons: list[str] = []
    if not session.supports(SUBMISSION_CAPABILITY):
        reasons.append(f"server does not advertise {SUBMISSION_CAPABILITY}")
    if account.is_read_only:
        reasons.append(f"account {account.identifier} is read-only")

    if reasons:
        return CapabilityDecision(
            register_mail=True,
            register_submission=False,
            submission_notice="Email submission tools will not be available: " + " and ".join(reasons),
        )
    return CapabilityDecision(register_mail=True, register_submission=True)
