"""
Tests for validation trace checks.
"""
from aa_singleton.chain import TraceEntry
from aa_singleton.tracing import find_banned_ops
from aa_singleton.utils import to_address

SINGLETON = to_address("0x" + "01" * 20)
ACCOUNT = to_address("0x" + "02" * 20)
PAYMASTER = to_address("0x" + "03" * 20)
OTHER = to_address("0x" + "04" * 20)


def test_clean_trace():
    trace = [
        TraceEntry(0, SINGLETON, "sload", "stake"),
        TraceEntry(1, ACCOUNT, "sload", "nonce"),
        TraceEntry(1, ACCOUNT, "sstore", "nonce"),
        TraceEntry(1, ACCOUNT, "call", SINGLETON),
    ]
    assert find_banned_ops(trace, exempt=[SINGLETON], storage_owners=[ACCOUNT]) == []


def test_environment_reads_are_flagged():
    trace = [
        TraceEntry(1, ACCOUNT, "block_number"),
        TraceEntry(1, ACCOUNT, "sload", "nonce"),
        TraceEntry(2, PAYMASTER, "gas_left"),
    ]
    assert find_banned_ops(trace, exempt=[SINGLETON]) == [trace[0], trace[2]]


def test_exempt_frames_may_do_anything():
    trace = [
        TraceEntry(0, SINGLETON, "block_number"),
        TraceEntry(0, SINGLETON, "sload", "whatever"),
    ]
    assert find_banned_ops(trace, exempt=[SINGLETON.lower()], storage_owners=[ACCOUNT]) == []


def test_foreign_storage_is_flagged():
    trace = [
        TraceEntry(1, ACCOUNT, "sload", "nonce"),
        TraceEntry(2, PAYMASTER, "sload", "quota"),
        TraceEntry(2, OTHER, "sload", "counters"),
    ]
    assert find_banned_ops(trace, storage_owners=[ACCOUNT, PAYMASTER]) == [trace[2]]


def test_no_storage_owners_means_no_storage_check():
    trace = [TraceEntry(2, OTHER, "sstore", "anything")]
    assert find_banned_ops(trace) == []
