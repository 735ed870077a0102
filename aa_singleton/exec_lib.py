"""
Helpers for looking inside ``exec(address,bytes)`` calldata.

Paymasters use these to find out what an account is about to do before
agreeing to pay for it.
"""
from typing import NamedTuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .utils import selector, to_address

EXEC_SIGNATURE = "exec(address,bytes)"
EXEC_SELECTOR = selector(EXEC_SIGNATURE)


class ExecCall(NamedTuple):
    """Inner call carried by an exec payload."""
    dest: str
    method_sig: bytes
    params: bytes


def is_exec(data: bytes) -> bool:
    """True if ``data`` starts with the ``exec(address,bytes)`` selector."""
    return len(data) >= 4 and bytes(data[:4]) == EXEC_SELECTOR


def decode_exec_method(data: bytes) -> ExecCall:
    """
    Split an exec payload into destination, inner selector and inner params.

    Raises:
        ValueError: If ``data`` is not a well-formed exec call, or the inner
            call is shorter than a selector
    """
    if not is_exec(data):
        raise ValueError("not an exec(address,bytes) call")
    try:
        dest, inner = decode(["address", "bytes"], bytes(data[4:]))
    except DecodingError as e:
        raise ValueError(f"malformed exec payload: {e}")
    if len(inner) < 4:
        raise ValueError("inner call has no method selector")
    return ExecCall(dest=to_address(dest), method_sig=inner[:4], params=inner[4:])
