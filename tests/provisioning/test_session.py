"""Unit tests for SessionManager locking."""

import asyncio

import httpx

import bigv.redact as redact_module
from bigv.provisioning.session import SessionManager

from conftest import AUTH_URL


def _slow_auth_transport(counter):
    async def handler(request):
        counter.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(200, text=f"token-number-{len(counter)}")

    return httpx.MockTransport(handler)


async def test_concurrent_ensure_acquires_once():
    calls = []
    async with httpx.AsyncClient(transport=_slow_auth_transport(calls)) as http:
        session = SessionManager("alice", "pw", auth_url=AUTH_URL)
        tokens = await asyncio.gather(*(session.ensure(http) for _ in range(5)))

    assert len(calls) == 1
    assert set(tokens) == {"token-number-1"}


async def test_refresh_always_replaces_token():
    calls = []
    async with httpx.AsyncClient(transport=_slow_auth_transport(calls)) as http:
        session = SessionManager("alice", "pw", auth_url=AUTH_URL)
        await session.ensure(http)
        await session.refresh(http)
        await session.ensure(http)

    assert len(calls) == 2
    assert session.token == "token-number-2"


async def test_token_is_registered_for_redaction():
    calls = []
    async with httpx.AsyncClient(transport=_slow_auth_transport(calls)) as http:
        session = SessionManager("alice", "pw", auth_url=AUTH_URL)
        token = await session.ensure(http)

    assert redact_module.redact_secrets(f"Using session {token}") == "Using session ***"
