"""Error hierarchy for BigV API operations.

Every error names the operation and the resource it concerns so callers can
tell the categories apart without inspecting internals.
"""

from __future__ import annotations

from typing import Any


class BigVError(Exception):
    """Base exception for BigV provider errors."""

    def __init__(self, message: str, *, operation: str = "", resource: str = "", last_known: dict[str, Any] | None = None) -> None:
        self.message = message
        self.operation = operation
        self.resource = resource
        # Best-known attribute mapping when the failure happened mid-provisioning.
        self.last_known = last_known
        super().__init__(message)

    def __str__(self) -> str:
        prefix = " ".join(p for p in (self.operation, f"'{self.resource}'" if self.resource else "") if p)
        return f"{prefix}: {self.message}" if prefix else self.message


class TransportError(BigVError):
    """Connection failure or request deadline exceeded."""


class AuthorizationError(BigVError):
    """Credentials rejected by the session endpoint or a repeated 401."""


class RemoteFaultError(BigVError):
    """BigV answered with a status the operation does not accept."""

    def __init__(self, status_code: int, body: str = "", **kwargs: Any) -> None:
        self.status_code = status_code
        self.body = body
        message = f"BigV returned HTTP status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message, **kwargs)


class ValidationError(BigVError, ValueError):
    """Request rejected before any network call."""


class CapacityError(ValidationError):
    """Cores and memory do not satisfy the capacity rule."""


class ImageError(ValidationError):
    """Contradictory image settings, such as an SSH key with no OS."""


class ComputedAttributeError(ValidationError):
    """Caller supplied an attribute only BigV may set."""


class ProvisioningTimeout(BigVError, TimeoutError):
    """A polling deadline elapsed; the machine's final state is unknown."""

    def __init__(self, message: str, *, timeout: float, **kwargs: Any) -> None:
        self.timeout = timeout
        super().__init__(message, **kwargs)


class ClientStateError(BigVError, RuntimeError):
    """The transport ran out of attempts without a terminal outcome."""
