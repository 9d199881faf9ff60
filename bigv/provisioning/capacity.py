"""Cores to memory capacity rule.

BigV charges per GiB of memory and grants one core per started 4 GiB, so the
two values are not independent. See: http://www.bigv.io/prices
"""

from bigv.provisioning.errors import CapacityError

MIB_PER_CORE = 4096
DEFAULT_CORES = 1
DEFAULT_MEMORY = 1024


def expected_cores(memory):
    """Cores BigV allocates for *memory* MiB: ceil(memory / 4096), at least 1."""
    return max(1, (memory + MIB_PER_CORE - 1) // MIB_PER_CORE)


def reconcile(cores, memory):
    """Fill in or verify the cores/memory pair.

    Zero or None means "unset". Returns the ``(cores, memory)`` pair to submit.

    Raises:
        CapacityError: both values are set and disagree, or a value is negative.
    """
    cores = cores or 0
    memory = memory or 0
    if cores < 0 or memory < 0:
        raise CapacityError(f"cores and memory must not be negative (got {cores} cores, {memory} MiB)", operation="validate")

    if not cores and not memory:
        return DEFAULT_CORES, DEFAULT_MEMORY
    if not cores:
        return expected_cores(memory), memory
    if not memory:
        return cores, max(DEFAULT_MEMORY, (cores - 1) * MIB_PER_CORE)

    expected = expected_cores(memory)
    if cores != expected:
        raise CapacityError(
            f"memory and cores mismatch: expected {expected} cores for your {memory / 1024:g}GiB memory, "
            f"but you have {cores}. Specify 1 core per 4GiB memory. See: http://www.bigv.io/prices",
            operation="validate",
        )
    return cores, memory
