"""Stdio entrypoint for the JMAP mail MCP server."""

from __future__ import annotations

import argparse
import os
from typing import Callable, Iterable

import anyio
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger

from . import __version__
from .capabilities import decide
from .client import JMAPClient
from .config import BEARER_TOKEN_ENV, SESSION_URL_ENV, JMAPSettings, resolve_config
from .exceptions import JMAPBridgeError
from .models import MAIL_CAPABILITY, SUBMISSION_CAPABILITY
from .session import negotiate
from .tools import register_tools

logger = get_logger(__name__)

SERVER_NAME = "jmap"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ClientFactory = Callable[[str, str], JMAPClient]


async def create_server(settings: JMAPSettings, client: JMAPClient) -> FastMCP:
    """Negotiate the session and build a FastMCP surface with the tools the account supports."""

    session, account = await negotiate(settings, client)
    logger.debug("Session negotiated for account %s (read-only=%s)", account.identifier, account.is_read_only)

    decision = decide(session, account)
    logger.debug("Capability decision: %s", decision)

    mcp = FastMCP(
        SERVER_NAME,
        instructions=(
            f"Tools for the JMAP mail account {account.name or account.identifier}"
            + (" (read-only)." if account.is_read_only else ".")
        ),
    )
    mcp._mcp_server.version = __version__

    register_tools(mcp, client, account, decision)
    if decision.register_mail:
        logger.info("Registered %s tools", MAIL_CAPABILITY)
    if decision.register_submission:
        logger.info("Registered %s tools", SUBMISSION_CAPABILITY)
    else:
        logger.info(decision.submission_notice)
    return mcp


async def serve(
    environ: dict[str, str] | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> None:
    """Run the bootstrap sequence and serve on stdio until the process is stopped."""

    settings = resolve_config(environ)
    logger.debug("Configuration resolved for %s", settings.session_url)

    factory = client_factory or JMAPClient
    client = factory(str(settings.session_url), settings.bearer_token.get_secret_value())
    try:
        mcp = await create_server(settings, client)
        logger.info("JMAP MCP server running on stdio")
        await mcp.run_stdio_async()
    finally:
        await client.aclose()


def describe_error(exc: BaseException) -> str:
    """Render an exception together with its chain of causes."""
    parts = [f"{type(exc).__name__}: {exc}"]
    seen = {id(exc)}
    cause = exc.__cause__ or exc.__context__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        parts.append(f"caused by {type(cause).__name__}: {cause}")
        cause = cause.__cause__ or cause.__context__
    return " <- ".join(parts)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the JMAP mail MCP server on stdio.")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Diagnostic log level written to stderr (overrides JMAP_LOG_LEVEL).",
    )
    return parser.parse_args(None if argv is None else list(argv))


def resolve_log_level(requested: str | None) -> str:
    level = (requested or os.environ.get("JMAP_LOG_LEVEL", "INFO")).upper()
    if level == "TRACE":
        return "DEBUG"
    if level not in LOG_LEVELS:
        return "INFO"
    return level


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(resolve_log_level(args.log_level))  # type: ignore[arg-type]

    try:
        anyio.run(serve)
    except JMAPBridgeError as exc:
        logger.error("JMAP connection failed: %s", describe_error(exc))
        logger.error(
            "Please check your %s and %s environment variables.",
            SESSION_URL_ENV,
            BEARER_TOKEN_ENV,
        )
        raise SystemExit(1) from exc
    except Exception as exc:
        logger.exception("Fatal error in main(): %s", describe_error(exc))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
