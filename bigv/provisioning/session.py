"""Session tokens for the BigV API."""

import asyncio
import logging

from bigv.provisioning.errors import AuthorizationError
from bigv.redact import register_secret

logger = logging.getLogger(__name__)

DEFAULT_AUTH_URL = "https://auth.bytemark.co.uk/session"


class SessionManager:
    """Owns the bearer token shared by every request of one client.

    Only one session request runs at a time. ``ensure()`` is double-checked so
    tasks queued behind a refresh reuse its token; ``refresh()`` always
    replaces the cached token.
    """

    def __init__(self, user, password, auth_url=DEFAULT_AUTH_URL):
        self.user = user
        self._password = password
        self.auth_url = auth_url
        self.token = None
        self._lock = asyncio.Lock()

    async def ensure(self, http):
        """Return the current token, requesting one if none is cached."""
        if self.token is None:
            async with self._lock:
                if self.token is None:
                    await self._acquire(http)
        return self.token

    async def refresh(self, http):
        """Replace the cached token with a freshly issued one."""
        async with self._lock:
            await self._acquire(http)
        return self.token

    async def _acquire(self, http):
        logger.info(f"Requesting new session at: {self.auth_url}")
        resp = await http.post(
            self.auth_url,
            json={"username": self.user, "password": self._password},
            headers={"Accept": "text/plain"},
        )
        if not resp.is_success:
            raise AuthorizationError(
                f"session request rejected with HTTP status {resp.status_code}",
                operation="authenticate",
                resource=self.user,
            )
        token = resp.text.strip()
        if not token:
            raise AuthorizationError("session endpoint returned an empty token", operation="authenticate", resource=self.user)
        register_secret(token)
        self.token = token
        logger.debug(f"Got back session id: {token}")
        return token
