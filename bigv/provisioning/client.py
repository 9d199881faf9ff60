"""Authenticated HTTP transport for the BigV API.

Every request carries the session's bearer token, replays the same body bytes
on each attempt and follows :class:`~bigv.provisioning.retry.RetryPolicy`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from bigv.provisioning.errors import ClientStateError, RemoteFaultError, TransportError
from bigv.provisioning.polling import Clock
from bigv.provisioning.retry import Outcome, RetryPolicy
from bigv.provisioning.session import DEFAULT_AUTH_URL, SessionManager

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://uk0.bigv.io"
REQUEST_TIMEOUT = 20  # seconds, whole request lifecycle


class BigVClient:
    """HTTP client bound to one BigV account and one set of credentials."""

    def __init__(
        self,
        account: str,
        user: str,
        password: str,
        *,
        api_url: str = DEFAULT_API_URL,
        auth_url: str = DEFAULT_AUTH_URL,
        http_client: httpx.AsyncClient | None = None,
        session: SessionManager | None = None,
        policy: RetryPolicy | None = None,
        clock: Clock | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.account = account
        self.api_url = api_url.rstrip("/")
        self.session = session or SessionManager(user, password, auth_url=auth_url)
        self.policy = policy or RetryPolicy()
        self.clock = clock or Clock()
        self.timeout = float(timeout)
        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> BigVClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    def group_url(self, group: str, path: str = "") -> str:
        """Absolute URL of *path* under the account's *group*."""
        return f"{self.api_url}/accounts/{self.account}/groups/{group}{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.session.token}",
            "Content-Type": "application/json",
        }

    async def _session_call(self, coro, operation: str, resource: str) -> None:
        try:
            await coro
        except httpx.TransportError as e:
            raise TransportError(f"session request failed: {e}", operation=operation, resource=resource) from e

    async def execute(
        self,
        method: str,
        url: str,
        *,
        json_body: Any | None = None,
        params: dict[str, str] | None = None,
        operation: str = "",
        resource: str = "",
    ) -> httpx.Response:
        """Send one logical request, retrying as the policy dictates.

        Returns the response for any status the policy treats as terminal;
        interpreting 2xx/4xx is left to the caller.

        Raises:
            TransportError: connection failure or request deadline.
            RemoteFaultError: a 5xx (or otherwise unusable) status.
        """
        http = self._get_http()
        if self.session.token is None:
            await self._session_call(self.session.ensure(http), operation, resource)

        # Serialized once; every attempt sends identical bytes.
        body = json.dumps(json_body).encode() if json_body is not None else None

        for attempt in self.policy.attempts():
            request = http.build_request(method, url, content=body, params=params, headers=self._headers())
            logger.debug(f"{method} {request.url} (attempt {attempt + 1}/{self.policy.max_attempts})")
            try:
                resp = await asyncio.wait_for(http.send(request), timeout=self.timeout)
            except TimeoutError as e:
                raise TransportError(f"{method} {url} exceeded {self.timeout:g}s", operation=operation, resource=resource) from e
            except httpx.TransportError as e:
                raise TransportError(f"{method} {url} failed: {e}", operation=operation, resource=resource) from e

            outcome = self.policy.decide(attempt, resp.status_code)
            if outcome is Outcome.RETURN:
                return resp
            if outcome is Outcome.REAUTHENTICATE:
                logger.warning(f"HTTP 401 from {method} {url}. Retrying with a new session id")
                await self.clock.sleep(self.policy.reauth_delay)
                await self._session_call(self.session.refresh(http), operation, resource)
                continue
            raise RemoteFaultError(resp.status_code, resp.text, operation=operation, resource=resource)

        raise ClientStateError("unexpected client state: attempts exhausted without a response", operation=operation, resource=resource)
