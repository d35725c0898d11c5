"""Shared data models describing the negotiated JMAP session."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .exceptions import JMAPMethodError

CORE_CAPABILITY = "urn:ietf:params:jmap:core"
MAIL_CAPABILITY = "urn:ietf:params:jmap:mail"
SUBMISSION_CAPABILITY = "urn:ietf:params:jmap:submission"


class _JMAPModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class AccountInfo(_JMAPModel):
    """An account entry from the session's account table."""

    identifier: str = Field(description="Account identifier used as accountId in method calls.")
    name: str | None = Field(default=None, description="User-friendly account name.")
    is_personal: bool = Field(default=True, description="True when the account belongs to the authenticated user.")
    is_read_only: bool = Field(default=False, description="True when mutating operations must never be exposed.")
    account_capabilities: dict[str, Any] = Field(
        default_factory=dict, description="Per-account capability objects keyed by URN."
    )


class ServerSession(_JMAPModel):
    """The JMAP session resource returned by the server's session endpoint."""

    capabilities: dict[str, Any] = Field(description="Server capability objects keyed by capability URN.")
    accounts: dict[str, AccountInfo] = Field(default_factory=dict, description="Account table keyed by account id.")
    primary_accounts: dict[str, str] = Field(
        default_factory=dict, description="Default account id per capability URN."
    )
    username: str | None = Field(default=None, description="Username associated with the credential.")
    api_url: str = Field(description="URL used for JMAP API requests.")
    download_url: str | None = Field(default=None, description="URL template for blob downloads.")
    upload_url: str | None = Field(default=None, description="URL template for blob uploads.")
    event_source_url: str | None = Field(default=None, description="URL for push event sources.")
    state: str | None = Field(default=None, description="Opaque session state string.")

    @model_validator(mode="before")
    @classmethod
    def _inject_account_ids(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        accounts = data.get("accounts")
        if isinstance(accounts, dict):
            data = dict(data)
            data["accounts"] = {
                account_id: ({"identifier": account_id, **entry} if isinstance(entry, dict) else entry)
                for account_id, entry in accounts.items()
            }
        return data

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def primary_account(self, capability: str = MAIL_CAPABILITY) -> str | None:
        return self.primary_accounts.get(capability)


class MethodResponse(BaseModel):
    """A single entry of a JMAP ``methodResponses`` array."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str

    @classmethod
    def from_wire(cls, entry: list[Any]) -> "MethodResponse":
        name, arguments, call_id = entry
        return cls(name=name, arguments=arguments, call_id=call_id)

    @property
    def is_error(self) -> bool:
        return self.name == "error"

    def unwrap(self, method: str) -> dict[str, Any]:
        """Return the arguments or raise :class:`JMAPMethodError` for an error response."""
        if self.is_error:
            raise JMAPMethodError(
                method,
                self.arguments.get("type", "serverFail"),
                self.arguments.get("description"),
            )
        return self.arguments
