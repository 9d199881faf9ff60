"""Shared pytest fixtures: a scripted fake BigV API and a simulated clock."""

import json
import os
import subprocess
import sys

import httpx
import pytest

from bigv.provisioning.client import BigVClient
from bigv.provisioning.machine import MachineProvisioner

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

API_URL = "https://api.test.bigv.io"
AUTH_URL = "https://auth.test.bytemark.co.uk/session"
ACCOUNT = "acme"
GROUP_PATH = f"/accounts/{ACCOUNT}/groups/default"


class FakeClock:
    """Simulated time: ``sleep()`` advances ``monotonic()`` instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeBigV:
    """Scripted BigV API behind httpx.MockTransport.

    Each (method, path) route holds a queue of responses; the last one
    repeats once the queue is drained. A response is a ``(status, body)``
    tuple, where dict bodies are sent as JSON, an exception instance to
    raise instead of answering, or a callable taking the request and
    returning either of those.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.session_requests = []
        self.auth_status = 200

    def on(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request):
        if str(request.url) == AUTH_URL:
            self.session_requests.append(request)
            return httpx.Response(self.auth_status, text=f"session-token-{len(self.session_requests)}\n")

        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "not found"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            response = response(request)
        if isinstance(response, Exception):
            raise response
        status, body = response
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")


def request_json(request):
    return json.loads(request.content)


@pytest.fixture
def fake_api():
    return FakeBigV()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def client(fake_api, clock):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    bigv = BigVClient(ACCOUNT, "alice", "correct-horse-battery", api_url=API_URL, auth_url=AUTH_URL, http_client=http, clock=clock)
    yield bigv
    await http.aclose()


@pytest.fixture
def ssh_calls():
    return []


@pytest.fixture
def provisioner(client, clock, ssh_calls):
    """Provisioner with fast polling and a recording SSH waiter."""

    async def fake_wait_for_ssh(host, password, timeout, interval, clock):
        ssh_calls.append({"host": host, "password": password, "timeout": timeout})
        return 1

    return MachineProvisioner(client, clock=clock, poll_interval=5, timeout=60, ssh_waiter=fake_wait_for_ssh)


@pytest.fixture(scope="session")
def run_cli():
    """Return a callable that invokes the bigv CLI as a subprocess."""

    def _run(*args, env=None):
        result = subprocess.run(
            [sys.executable, "-m", "bigv.bigv", *args],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
            env={**os.environ, **(env or {})},
        )
        return result.returncode, result.stdout, result.stderr

    return _run
