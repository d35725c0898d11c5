"""Tool groups exposed by the bridge."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from ..capabilities import CapabilityDecision
from ..client import JMAPClient
from ..models import AccountInfo
from .mail import register_mail_tools
from .submission import register_submission_tools

__all__ = ["register_tools", "register_mail_tools", "register_submission_tools"]


def register_tools(
    mcp: FastMCP,
    client: JMAPClient,
    account: AccountInfo,
    decision: CapabilityDecision,
) -> None:
    """Attach each enabled tool group once, mail tools first."""

    if decision.register_mail:
        register_mail_tools(mcp, client, account.identifier, account.is_read_only)
    if decision.register_submission:
        register_submission_tools(mcp, client, account.identifier)
