"""Unit tests for the BigV HTTP transport: sessions, body replay, retries."""

import httpx
import pytest

from bigv.provisioning.client import BigVClient
from bigv.provisioning.errors import AuthorizationError, ClientStateError, RemoteFaultError, TransportError
from bigv.provisioning.retry import RetryPolicy

from conftest import API_URL, AUTH_URL, GROUP_PATH, request_json

VM_PATH = f"{GROUP_PATH}/virtual_machines/web1"
VM_URL = f"{API_URL}{VM_PATH}"


def test_group_url():
    client = BigVClient("acme", "alice", "pw", api_url="https://uk0.bigv.io/")
    assert client.group_url("prod", "/vm_create") == "https://uk0.bigv.io/accounts/acme/groups/prod/vm_create"


async def test_first_request_acquires_session(client, fake_api):
    fake_api.on("GET", VM_PATH, (200, {"id": 1}))

    resp = await client.execute("GET", VM_URL)

    assert resp.status_code == 200
    assert len(fake_api.session_requests) == 1
    auth = fake_api.session_requests[0]
    assert request_json(auth) == {"username": "alice", "password": "correct-horse-battery"}
    assert auth.headers["accept"] == "text/plain"
    assert fake_api.requests[0].headers["authorization"] == "Bearer session-token-1"


async def test_session_is_reused_across_calls(client, fake_api):
    fake_api.on("GET", VM_PATH, (200, {"id": 1}))

    await client.execute("GET", VM_URL)
    await client.execute("GET", VM_URL)

    assert len(fake_api.session_requests) == 1
    assert len(fake_api.requests) == 2


async def test_401_on_first_attempt_reauthenticates_once_and_retries(client, fake_api, clock):
    fake_api.on("GET", VM_PATH, (401, "expired"), (200, {"id": 1}))

    resp = await client.execute("GET", VM_URL)

    assert resp.status_code == 200
    assert len(fake_api.session_requests) == 2
    assert len(fake_api.requests) == 2
    assert fake_api.requests[1].headers["authorization"] == "Bearer session-token-2"
    assert clock.sleeps == [1.0]


async def test_401_on_second_attempt_is_returned(client, fake_api):
    fake_api.on("GET", VM_PATH, (401, "nope"))

    resp = await client.execute("GET", VM_URL)

    assert resp.status_code == 401
    assert len(fake_api.session_requests) == 2
    assert len(fake_api.requests) == 2


async def test_body_is_replayed_identically(client, fake_api):
    fake_api.on("PUT", VM_PATH, (401, ""), (200, {"id": 1}))

    await client.execute("PUT", VM_URL, json_body={"cores": 2, "memory": 8192})

    first, second = fake_api.requests
    assert first.content == second.content
    assert request_json(second) == {"cores": 2, "memory": 8192}
    assert second.headers["content-type"] == "application/json"


async def test_client_errors_are_returned_without_retry(client, fake_api):
    fake_api.on("GET", VM_PATH, (404, {"error": "missing"}))

    resp = await client.execute("GET", VM_URL)

    assert resp.status_code == 404
    assert len(fake_api.requests) == 1


async def test_500_is_a_remote_fault_with_body(client, fake_api):
    fake_api.on("GET", VM_PATH, (500, "database on fire"))

    with pytest.raises(RemoteFaultError) as excinfo:
        await client.execute("GET", VM_URL, operation="read", resource="web1")

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "database on fire"
    assert "read 'web1'" in str(excinfo.value)
    assert "database on fire" in str(excinfo.value)
    assert len(fake_api.requests) == 1


async def test_connection_error_is_not_retried(client, fake_api):
    fake_api.on("GET", VM_PATH, httpx.ConnectError("connection refused"))

    with pytest.raises(TransportError, match="connection refused"):
        await client.execute("GET", VM_URL)

    assert len(fake_api.requests) == 1


async def test_rejected_credentials_raise_authorization_error(client, fake_api):
    fake_api.auth_status = 403

    with pytest.raises(AuthorizationError, match="HTTP status 403"):
        await client.execute("GET", VM_URL)

    assert fake_api.requests == []


async def test_exhausted_attempts_raise_client_state_error(fake_api, clock):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    client = BigVClient(
        "acme", "alice", "pw", api_url=API_URL, auth_url=AUTH_URL, http_client=http, clock=clock, policy=RetryPolicy(max_attempts=1)
    )
    fake_api.on("GET", VM_PATH, (401, ""))

    with pytest.raises(ClientStateError, match="unexpected client state"):
        await client.execute("GET", VM_URL)
    await http.aclose()


async def test_http_client_is_created_lazily_and_closed():
    client = BigVClient("acme", "alice", "pw")
    assert client._http is None
    http = client._get_http()
    assert client._get_http() is http
    assert http.timeout.connect == 20
    await client.aclose()
    assert client._http is None
