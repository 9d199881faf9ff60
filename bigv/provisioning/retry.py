"""Retry policy for BigV API requests, separate from the I/O loop."""

import enum
from dataclasses import dataclass


class Outcome(enum.Enum):
    """What the transport does with one attempt's response status."""

    RETURN = "return"
    REAUTHENTICATE = "reauthenticate"
    FAIL = "fail"


@dataclass(frozen=True)
class RetryPolicy:
    """Decides the fate of each attempt.

    BigV is known to answer 401 to sessions that are still valid, so the first
    401 forces a new session and one more attempt. A second 401 is a genuine
    rejection and goes back to the caller. Success and other client errors are
    terminal; server errors become a remote fault without retry.
    """

    max_attempts: int = 3
    reauth_delay: float = 1.0

    def decide(self, attempt: int, status_code: int) -> Outcome:
        """Classify *status_code* seen on zero-based *attempt*."""
        if status_code == 401 and attempt == 0:
            return Outcome.REAUTHENTICATE
        if 200 <= status_code < 500:
            return Outcome.RETURN
        return Outcome.FAIL

    def attempts(self):
        return range(self.max_attempts)
