"""Clock abstraction and the bounded poll loop shared by every wait phase."""

import asyncio
import logging
import time

from bigv.provisioning.errors import ProvisioningTimeout

logger = logging.getLogger(__name__)


class Clock:
    """Real time: monotonic reads and asyncio sleeps.

    Tests substitute a clock whose ``sleep()`` advances simulated time.
    """

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


async def poll_until(check, *, clock, interval, timeout, description, resource="", last_known=None):
    """Call *check* every *interval* seconds until it returns True.

    The deadline is measured from loop entry. The first check runs immediately;
    later checks follow a sleep of *interval*. Errors raised by *check* end the
    loop and propagate.

    Args:
        check: async callable returning True once the awaited condition holds.
        last_known: optional callable returning the best-known attribute
            mapping, attached to the timeout error.

    Returns:
        Number of checks performed.

    Raises:
        ProvisioningTimeout: the deadline passed before *check* succeeded.
    """
    deadline = clock.monotonic() + timeout
    polls = 0
    while True:
        polls += 1
        if await check():
            logger.debug(f"{description}: done after {polls} poll(s)")
            return polls
        if clock.monotonic() + interval > deadline:
            raise ProvisioningTimeout(
                f"timed out after {timeout}s waiting for {description} ({polls} polls)",
                timeout=timeout,
                operation="wait",
                resource=resource,
                last_known=last_known() if last_known else None,
            )
        await clock.sleep(interval)
