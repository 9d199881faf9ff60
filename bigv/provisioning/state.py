"""Provisioning state machine for one machine create.

absent -> submitted -> provisioned -> powered -> network_ready, with
``failed`` reachable from every non-terminal state. The powered and
network_ready phases are optional, so provisioned and powered may also
finish directly.
"""

from __future__ import annotations

import enum
import logging
from types import MappingProxyType

logger = logging.getLogger(__name__)


class State(enum.Enum):
    ABSENT = "absent"
    SUBMITTED = "submitted"
    PROVISIONED = "provisioned"
    POWERED = "powered"
    NETWORK_READY = "network_ready"
    FAILED = "failed"


ALLOWED_TRANSITIONS = MappingProxyType(
    {
        State.ABSENT: frozenset({State.SUBMITTED, State.FAILED}),
        State.SUBMITTED: frozenset({State.PROVISIONED, State.FAILED}),
        State.PROVISIONED: frozenset({State.POWERED, State.NETWORK_READY, State.FAILED}),
        State.POWERED: frozenset({State.NETWORK_READY, State.FAILED}),
        State.NETWORK_READY: frozenset(),
        State.FAILED: frozenset(),
    }
)


class InvalidTransition(RuntimeError):
    pass


class Provisioning:
    """Tracks where one create has got to."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.state = State.ABSENT
        self.history = [State.ABSENT]

    def advance(self, new_state: State) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.name}: {self.state.value} -> {new_state.value} is not allowed")
        logger.debug(f"{self.name}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        if self.state is not State.FAILED and ALLOWED_TRANSITIONS[self.state]:
            self.advance(State.FAILED)
