"""Runtime configuration for the JMAP MCP bridge."""

from __future__ import annotations

import os
from typing import Mapping

from pydantic import Field, HttpUrl, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfigError, MissingConfigError

SESSION_URL_ENV = "JMAP_SESSION_URL"
BEARER_TOKEN_ENV = "JMAP_BEARER_TOKEN"
ACCOUNT_ID_ENV = "JMAP_ACCOUNT_ID"

# Environment variable -> settings field, in the order they are checked.
_ENV_FIELDS: dict[str, str] = {
    SESSION_URL_ENV: "session_url",
    BEARER_TOKEN_ENV: "bearer_token",
    ACCOUNT_ID_ENV: "account_id",
}
_REQUIRED_ENV = (SESSION_URL_ENV, BEARER_TOKEN_ENV)


class JMAPSettings(BaseSettings):
    """Connection settings needed to reach the JMAP server."""

    model_config = SettingsConfigDict(
        env_prefix="JMAP_",
        extra="ignore",
        frozen=True,
    )

    session_url: HttpUrl = Field(description="JMAP server session URL.")
    bearer_token: SecretStr = Field(description="Bearer token for authentication.")
    account_id: str | None = Field(
        default=None,
        description="Account ID (auto-detected from the server's primary mail account if not provided).",
    )


def resolve_config(environ: Mapping[str, str] | None = None) -> JMAPSettings:
    """Read and validate the bridge configuration from the environment.

    Raises :class:`MissingConfigError` naming the environment variable when a
    mandatory value is absent or blank, and :class:`InvalidConfigError` when a
    value is present but malformed.
    """

    source = os.environ if environ is None else environ
    values: dict[str, str] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = source.get(env_name)
        if raw is None or not raw.strip():
            continue
        values[field_name] = raw.strip() if env_name == SESSION_URL_ENV else raw

    for env_name in _REQUIRED_ENV:
        if _ENV_FIELDS[env_name] not in values:
            raise MissingConfigError(env_name)

    try:
        return JMAPSettings.model_validate(values)
    except ValidationError as exc:
        error = exc.errors()[0]
        field_name = str(error["loc"][0]) if error.get("loc") else "session_url"
        raise InvalidConfigError(_env_name_for(field_name), error["msg"]) from exc


def _env_name_for(field_name: str) -> str:
    for env_name, candidate in _ENV_FIELDS.items():
        if candidate == field_name:
            return env_name
    return field_name
