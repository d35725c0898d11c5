"""Thin asynchronous JMAP client used by the bridge and its tools."""

from __future__ import annotations

from typing import Any, Iterable

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .exceptions import JMAPRequestError
from .models import CORE_CAPABILITY, MAIL_CAPABILITY, MethodResponse, ServerSession

DEFAULT_TIMEOUT_SECONDS = 30.0


class JMAPClient:
    """Fetches the JMAP session once and posts method call batches to its API URL."""

    def __init__(
        self,
        session_url: str,
        bearer_token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session_url = session_url
        self._http = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {bearer_token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._session: ServerSession | None = None

    async def get_session(self) -> ServerSession:
        """Return the session resource, fetching it on first use only.

        Transport and HTTP failures propagate as ``httpx`` exceptions and a
        malformed session body as ``pydantic.ValidationError``.
        """
        if self._session is not None:
            return self._session
        response = await self._http.get(self.session_url)
        response.raise_for_status()
        self._session = ServerSession.model_validate(response.json())
        return self._session

    async def get_primary_account(self, capability: str = MAIL_CAPABILITY) -> str | None:
        session = await self.get_session()
        return session.primary_account(capability)

    async def request(
        self,
        method_calls: Iterable[list[Any]],
        *,
        using: Iterable[str] | None = None,
        retry: bool = False,
    ) -> list[MethodResponse]:
        """Post a batch of ``[name, arguments, call_id]`` method calls.

        ``retry`` enables retries on transport errors and must only be set for
        batches without side effects.
        """
        session = await self.get_session()
        payload = {
            "using": list(using) if using is not None else [CORE_CAPABILITY, MAIL_CAPABILITY],
            "methodCalls": list(method_calls),
        }
        if not retry:
            return await self._post(session.api_url, payload)

        try:
            async for attempt in AsyncRetrying(
                wait=wait_exponential(multiplier=0.3, min=0.5, max=5),
                stop=stop_after_attempt(3),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    return await self._post(session.api_url, payload, wrap_transport_errors=False)
        except httpx.TransportError as exc:
            raise JMAPRequestError(f"JMAP request to {session.api_url} failed: {exc}") from exc
        raise JMAPRequestError("JMAP request was not attempted")  # pragma: no cover

    async def _post(
        self,
        api_url: str,
        payload: dict[str, Any],
        *,
        wrap_transport_errors: bool = True,
    ) -> list[MethodResponse]:
        try:
            response = await self._http.post(api_url, json=payload)
        except httpx.TransportError as exc:
            if not wrap_transport_errors:
                raise
            raise JMAPRequestError(f"JMAP request to {api_url} failed: {exc}") from exc
        if response.is_error:
            raise JMAPRequestError(
                f"JMAP request to {api_url} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
            return [MethodResponse.from_wire(entry) for entry in body["methodResponses"]]
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise JMAPRequestError(f"Malformed JMAP response from {api_url}") from exc

    async def aclose(self) -> None:
        await self._http.aclose()


def method_result(responses: list[MethodResponse], method: str, call_id: str) -> dict[str, Any]:
    """Return the arguments of the response to ``call_id``, raising on a method error."""
    for response in responses:
        if response.call_id == call_id:
            return response.unwrap(method)
    raise JMAPRequestError(f"No response to {method} ({call_id}) in JMAP reply")
