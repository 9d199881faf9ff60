"""BigV VM provisioning: session-aware API client, capacity rule, lifecycle orchestration."""

from bigv.provisioning.capacity import expected_cores, reconcile
from bigv.provisioning.client import BigVClient
from bigv.provisioning.errors import (
    AuthorizationError,
    BigVError,
    CapacityError,
    ClientStateError,
    ComputedAttributeError,
    ImageError,
    ProvisioningTimeout,
    RemoteFaultError,
    TransportError,
    ValidationError,
)
from bigv.provisioning.gate import AdmissionGate
from bigv.provisioning.machine import MachineProvisioner, build_create_request
from bigv.provisioning.polling import Clock, poll_until
from bigv.provisioning.retry import Outcome, RetryPolicy
from bigv.provisioning.session import SessionManager
from bigv.provisioning.ssh import wait_for_ssh
from bigv.provisioning.types import Machine

__all__ = [
    "AdmissionGate",
    "AuthorizationError",
    "BigVClient",
    "BigVError",
    "CapacityError",
    "ClientStateError",
    "Clock",
    "ComputedAttributeError",
    "ImageError",
    "Machine",
    "MachineProvisioner",
    "Outcome",
    "ProvisioningTimeout",
    "RemoteFaultError",
    "RetryPolicy",
    "SessionManager",
    "TransportError",
    "ValidationError",
    "build_create_request",
    "expected_cores",
    "poll_until",
    "reconcile",
    "wait_for_ssh",
]
