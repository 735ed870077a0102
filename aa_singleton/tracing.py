"""
Checks over execution traces recorded by ``Chain.call(..., trace=True)``.

Validation code must behave the same when simulated off-ledger and when
executed in a batch later. Reading the environment (block, fees, gas left,
balances) or storage belonging to someone else breaks that, so off-ledger
tooling runs the simulation entry points with tracing and rejects an
operation whose validation trace contains any of these.
"""
from typing import Collection, Iterable, List

from .chain import TraceEntry
from .utils import to_address

BANNED_OPS = frozenset({
    "gas_price",
    "gas_left",
    "block_number",
    "base_fee",
    "coinbase",
    "balance",
    "origin",
})

STORAGE_OPS = frozenset({"sload", "sstore"})


def find_banned_ops(
    trace: Iterable[TraceEntry],
    exempt: Collection[str] = (),
    storage_owners: Collection[str] = ()
) -> List[TraceEntry]:
    """
    Collect the trace entries that make a validation non-deterministic.

    Args:
        trace: Entries recorded while simulating a validation
        exempt: Frames allowed to do anything (normally the singleton itself)
        storage_owners: Addresses whose storage the validating parties may
            touch, besides the accessing frame's own (normally the account and
            paymaster). Empty skips the storage check.

    Returns:
        Offending entries, in trace order
    """
    exempt = {to_address(a) for a in exempt}
    owners = {to_address(a) for a in storage_owners}
    offending = []
    for entry in trace:
        if entry.address in exempt:
            continue
        if entry.kind in BANNED_OPS:
            offending.append(entry)
        elif entry.kind in STORAGE_OPS and owners and entry.address not in owners:
            offending.append(entry)
    return offending
