"""
Data models for the aa-singleton package.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from eth_abi import encode
from pydantic import BaseModel, Field, field_validator

from .gas import effective_gas_price
from .utils import ZERO_ADDRESS, keccak, to_address, to_bytes

USER_OP_TUPLE = "(address,address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,address,bytes,bytes)"


class PaymentMode(str, Enum):
    """Who fronts the fee of an operation. Fixed once validation picks it."""
    ACCOUNT_BALANCE = "account_balance"
    ACCOUNT_STAKE = "account_stake"
    SPONSOR_STAKE = "sponsor_stake"


class ExecutionOutcome(str, Enum):
    """Outcome handed to the paymaster's post_op."""
    SUCCEEDED = "succeeded"
    CALL_REVERTED = "call_reverted"
    # settlement retried after the first post_op (and the execution) unwound
    POST_OP_REVERTED = "post_op_reverted"


class UserOperation(BaseModel):
    """A single sponsored unit of work submitted to the singleton"""
    sender: str
    target: Optional[str] = None
    nonce: int = Field(0, ge=0)
    init_code: bytes = Field(b"", alias="initCode")
    call_data: bytes = Field(b"", alias="callData")
    call_gas: int = Field(0, ge=0, alias="callGas")
    verification_gas: int = Field(150000, ge=0, alias="verificationGas")
    max_fee_per_gas: int = Field(0, ge=0, alias="maxFeePerGas")
    max_priority_fee_per_gas: int = Field(0, ge=0, alias="maxPriorityFeePerGas")
    paymaster: str = ZERO_ADDRESS
    paymaster_data: bytes = Field(b"", alias="paymasterData")
    signature: bytes = b""

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("sender", "paymaster", mode="before")
    @classmethod
    def _checksum_address(cls, value):
        return to_address(value)

    @field_validator("target", mode="before")
    @classmethod
    def _checksum_target(cls, value):
        return None if value is None else to_address(value)

    @field_validator("init_code", "call_data", "paymaster_data", "signature", mode="before")
    @classmethod
    def _hex_to_bytes(cls, value):
        return to_bytes(value)

    @classmethod
    def from_tuple(cls, values) -> "UserOperation":
        """Build an operation from its decoded ABI tuple (see ``encode``)."""
        names = [
            "sender", "target", "nonce", "init_code", "call_data", "call_gas",
            "verification_gas", "max_fee_per_gas", "max_priority_fee_per_gas",
            "paymaster", "paymaster_data", "signature",
        ]
        if len(values) != len(names):
            raise ValueError(f"Expected {len(names)} fields, got {len(values)}")
        return cls(**dict(zip(names, values)))

    def get_target(self) -> str:
        """Account the call is executed against (and deployed to, on creation)."""
        return self.target or self.sender

    def has_paymaster(self) -> bool:
        return self.paymaster != ZERO_ADDRESS

    def gas_price(self, base_fee: int) -> int:
        return effective_gas_price(self.max_fee_per_gas, self.max_priority_fee_per_gas, base_fee)

    def required_gas(self) -> int:
        return self.verification_gas + self.call_gas

    def required_prefund(self, per_op_overhead: int) -> int:
        """Worst-case cost the fee payer must cover up front."""
        return (self.required_gas() + per_op_overhead) * self.max_fee_per_gas

    def pack(self) -> bytes:
        """
        Encode every field except the signature, with dynamic fields hashed.

        This is what the request id commits to, so the signature can be
        computed over it.
        """
        return encode(
            ["address", "address", "uint256", "bytes32", "bytes32", "uint256",
             "uint256", "uint256", "uint256", "address", "bytes32"],
            [
                self.sender, self.get_target(), self.nonce,
                keccak(self.init_code), keccak(self.call_data),
                self.call_gas, self.verification_gas,
                self.max_fee_per_gas, self.max_priority_fee_per_gas,
                self.paymaster, keccak(self.paymaster_data),
            ]
        )

    def as_tuple(self) -> tuple:
        """Field values in ABI order; the inverse of ``from_tuple``."""
        return (
            self.sender, self.get_target(), self.nonce, self.init_code, self.call_data,
            self.call_gas, self.verification_gas, self.max_fee_per_gas,
            self.max_priority_fee_per_gas, self.paymaster, self.paymaster_data,
            self.signature,
        )

    def encode(self) -> bytes:
        """Full ABI encoding, as it would appear in a batch's calldata."""
        return encode([USER_OP_TUPLE], [self.as_tuple()])

    def request_id(self, singleton: str, chain_id: int) -> bytes:
        """Hash binding this operation to one singleton on one chain."""
        return keccak(encode(
            ["bytes32", "address", "uint256"],
            [keccak(self.pack()), singleton, chain_id]
        ))


@dataclass
class StakeRecord:
    """
    Collateral held by the singleton on behalf of ``owner``.

    Attributes:
        owner: Address the stake belongs to
        amount: Locked collateral in wei (never negative)
        withdraw_block: Block from which withdrawal is allowed; 0 when no
            withdrawal has been requested
    """
    owner: str
    amount: int = 0
    withdraw_block: int = 0

    @property
    def withdraw_requested(self) -> bool:
        return self.withdraw_block != 0


EVENT_TYPES: Dict[str, Type["Event"]] = {}


class Event(BaseModel):
    """Base class for records emitted into a transaction's logs."""

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        EVENT_TYPES[cls.__name__] = cls

    @classmethod
    def name(cls) -> str:
        return cls.__name__

    def data_size(self) -> int:
        """Bytes of variable-length payload, used to price the log."""
        return sum(len(v) for v in self.__dict__.values() if isinstance(v, bytes))


class UserOperationEvent(Event):
    """Settlement record, one per processed operation."""
    request_id: bytes
    sender: str
    paymaster: str
    nonce: int
    actual_gas_cost: int
    actual_gas_price: int
    success: bool


class UserOperationRevertReason(Event):
    """The requested call failed and returned revert data."""
    request_id: bytes
    sender: str
    nonce: int
    revert_reason: bytes


class PostOpReverted(Event):
    """The paymaster's post_op failed during the retried settlement."""
    request_id: bytes
    sender: str
    paymaster: str
    reason: str


class AccountDeployed(Event):
    request_id: bytes
    sender: str


class Deposited(Event):
    owner: str
    total_stake: int


class WithdrawRequested(Event):
    owner: str
    withdraw_block: int


class Withdrawn(Event):
    owner: str
    destination: str
    amount: int


class TxReceipt(BaseModel):
    """Receipt of a transaction committed on the ledger"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]]

    class Config:
        populate_by_name = True

    def events(self, name: str) -> List[Event]:
        """
        Decode the logs emitted under ``name``.

        Args:
            name: Event class name, e.g. "UserOperationEvent"

        Returns:
            Event models in emission order
        """
        event_type = EVENT_TYPES[name]
        return [event_type.model_validate(log) for log in self.logs if log.get("event") == name]
