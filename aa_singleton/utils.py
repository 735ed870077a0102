"""
Utility functions for the aa-singleton package.
"""
from typing import Union

import rlp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Domain separation byte for counterfactual (CREATE2) address derivation
CREATE2_PREFIX = b"\xff"

ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)


def keccak(data: Union[bytes, str]) -> bytes:
    """
    Keccak-256 of raw bytes, or of the UTF-8 text when given a str.
    """
    if isinstance(data, str):
        return bytes(Web3.keccak(text=data))
    return bytes(Web3.keccak(bytes(data)))


def selector(signature: str) -> bytes:
    """4-byte function selector for a canonical signature like ``count()``."""
    return keccak(signature)[:4]


def to_address(value: Union[str, bytes, None]) -> str:
    """
    Normalize an address to its checksummed form.

    Args:
        value: 20-byte address as hex string or bytes; None means the zero address

    Returns:
        EIP-55 checksummed address

    Raises:
        ValueError: If the value is not a 20-byte address
    """
    if value is None:
        return ZERO_ADDRESS
    raw = to_bytes(value) if isinstance(value, str) else bytes(value)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return Web3.to_checksum_address(raw)


def to_bytes(value: Union[str, bytes, bytearray, None]) -> bytes:
    """Accept bytes or a (0x-prefixed) hex string and return bytes."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        hex_str = value[2:] if value.startswith("0x") else value
        return bytes.fromhex(hex_str)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def get_create2_address(deployer: str, salt: int, init_code: bytes) -> str:
    """
    Deterministic counterfactual address of ``init_code`` deployed by ``deployer``.

    Computes ``keccak(0xff ++ deployer ++ salt ++ keccak(init_code))[12:]``,
    bit-exact with the EIP-1014 rule.
    """
    salt_bytes = salt.to_bytes(32, "big") if isinstance(salt, int) else to_bytes(salt)
    if len(salt_bytes) != 32:
        raise ValueError("salt must be 32 bytes")
    digest = keccak(
        CREATE2_PREFIX + to_bytes(deployer) + salt_bytes + keccak(to_bytes(init_code))
    )
    return to_address(digest[12:])


def get_create_address(deployer: str, nonce: int) -> str:
    """Address of a plain CREATE: ``keccak(rlp([deployer, nonce]))[12:]``."""
    return to_address(keccak(rlp.encode([to_bytes(deployer), nonce]))[12:])


def encode_revert_reason(reason: str) -> bytes:
    """ABI encoding of ``Error(string)`` as produced by a Solidity ``require``."""
    return ERROR_SELECTOR + encode(["string"], [reason])


def decode_revert_reason(data: bytes) -> str:
    """
    Decode ``Error(string)`` revert data.

    Returns:
        The reason string, or "" when the data is empty or not an Error(string)
    """
    if len(data) < 4 or data[:4] != ERROR_SELECTOR:
        return ""
    try:
        return decode(["string"], data[4:])[0]
    except (DecodingError, UnicodeDecodeError):
        return ""


def calldata_cost(data: Union[bytes, str]) -> int:
    """Intrinsic gas of calldata: 4 per zero byte, 16 per non-zero byte."""
    return sum(4 if b == 0 else 16 for b in to_bytes(data))
