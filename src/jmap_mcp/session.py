"""Session negotiation against the configured JMAP server."""

from __future__ import annotations

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import ValidationError

from .client import JMAPClient
from .config import JMAPSettings
from .exceptions import MailUnsupportedError, SessionFailedError, UnknownAccountError
from .models import MAIL_CAPABILITY, AccountInfo, ServerSession

logger = get_logger(__name__)


async def negotiate(settings: JMAPSettings, client: JMAPClient) -> tuple[ServerSession, AccountInfo]:
    """Open the JMAP session and resolve the active account.

    An explicit ``account_id`` is used verbatim; otherwise the server's
    primary mail account is used. The resolved account must be present in the
    session account table.
    """

    try:
        session = await client.get_session()
    except (httpx.HTTPError, ValidationError, ValueError) as exc:
        raise SessionFailedError(f"Unable to open JMAP session at {settings.session_url}: {exc}") from exc

    account_id = settings.account_id
    if account_id is None:
        account_id = await client.get_primary_account(MAIL_CAPABILITY)
        if account_id is None:
            if not session.supports(MAIL_CAPABILITY):
                raise MailUnsupportedError(MAIL_CAPABILITY)
            raise UnknownAccountError(
                None, f"Server does not designate a primary account for {MAIL_CAPABILITY}"
            )
        logger.debug("Using primary mail account %s", account_id)

    account = session.accounts.get(account_id)
    if account is None:
        raise UnknownAccountError(account_id)
    return session, account
