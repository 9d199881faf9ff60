"""Admission gate serializing BigV create submissions.

Concurrent ``vm_create`` calls can deadlock BigV's IP allocation, so only one
submission may be in flight. The multi-minute wait that follows runs outside
the gate.
"""

import asyncio
import contextlib
import logging

logger = logging.getLogger(__name__)


class AdmissionGate:
    def __init__(self):
        self._lock = asyncio.Lock()

    @property
    def locked(self):
        return self._lock.locked()

    @contextlib.asynccontextmanager
    async def admit(self, name):
        """Hold the gate for the duration of one create submission."""
        if self._lock.locked():
            logger.info(f"Waiting for another create to be submitted before '{name}'...")
        async with self._lock:
            yield
