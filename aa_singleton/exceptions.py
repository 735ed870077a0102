"""
Exceptions for the aa-singleton package.

Everything that unwinds a frame on the ledger derives from ``Revert``. Only
``OutOfGas`` is frame-local: the caller of a frame never sees it directly,
it sees ``CallOutOfGas`` instead.
"""
from enum import Enum
from typing import Optional

from .utils import decode_revert_reason, encode_revert_reason


class FailureCode(str, Enum):
    """
    Failure codes attached to operation failures and failure records.
    """
    ACCOUNT_REVERTED = "ACCOUNT_REVERTED"
    PAYMASTER_REVERTED = "PAYMASTER_REVERTED"
    ADDRESS_MISMATCH = "ADDRESS_MISMATCH"
    DEPLOYMENT_FAILED = "DEPLOYMENT_FAILED"
    PREFUND_NOT_PAID = "PREFUND_NOT_PAID"
    UNEXPECTED_PAYMENT = "UNEXPECTED_PAYMENT"
    VERIFICATION_BUDGET_EXCEEDED = "VERIFICATION_BUDGET_EXCEEDED"
    INSUFFICIENT_STAKE = "INSUFFICIENT_STAKE"

    # Non-fatal outcomes, only ever recorded in logs
    CALL_REVERTED = "CALL_REVERTED"
    SPONSOR_FINALIZE_FAILED = "SPONSOR_FINALIZE_FAILED"


class AccountAbstractionError(Exception):
    """Base exception for the package."""
    pass


class TransactionError(AccountAbstractionError):
    """Raised by the client when a transaction fails for a non-protocol reason."""
    pass


class OutOfGas(AccountAbstractionError):
    """Raised inside a frame that consumed more gas than its meter allows."""
    pass


class Revert(AccountAbstractionError):
    """
    A frame reverted.

    Attributes:
        reason: Human readable reason ("" for a bare revert)
        data: Raw revert data; the ``Error(string)`` encoding of ``reason``
            unless given explicitly
    """

    def __init__(self, reason: str = "", data: Optional[bytes] = None):
        if data is None:
            data = encode_revert_reason(reason) if reason else b""
        self.reason = reason
        self.data = data
        super().__init__(reason or "reverted")

    @classmethod
    def from_data(cls, data: bytes) -> "Revert":
        """Rebuild a revert from raw data, e.g. to bubble a child's failure."""
        return cls(decode_revert_reason(data) or "", data=data)


class CallOutOfGas(Revert):
    """A child frame ran out of gas. Carries no revert data."""

    def __init__(self, reason: str = "out of gas"):
        super().__init__(reason, data=b"")


class InsufficientBalance(Revert):
    """A value transfer exceeded the sender's balance."""
    pass


class OffChainOnly(Revert):
    """A simulation entry point was reached from a state-changing call."""
    pass


class PrefundInsufficient(Revert):
    """
    Settlement found the prefund below the actual cost.

    Prepayment validation is meant to make this unreachable, so it is never
    absorbed: it aborts the whole batch.
    """
    pass


class StakeError(Revert):
    """Base class for collateral ledger failures."""

    def __init__(self, reason: str, owner: Optional[str] = None):
        self.owner = owner
        super().__init__(reason)


class InsufficientStake(StakeError):
    """Raised when a debit or withdrawal exceeds the recorded stake."""
    pass


class StillLocked(StakeError):
    """Raised when withdrawing before the unlock block (or before requesting it)."""
    pass


class FailedOp(Revert):
    """
    Validation of one operation in a batch failed.

    The whole batch is rejected. ``op_index`` and ``paymaster`` let a bundler
    drop exactly the offending operation and resubmit the rest.

    Attributes:
        op_index: Index of the operation inside the batch
        paymaster: Address of the responsible paymaster, or None when the
            account itself is at fault
        code: FailureCode classifying the failure
    """
    CODE = FailureCode.ACCOUNT_REVERTED

    def __init__(
        self,
        op_index: int,
        paymaster: Optional[str],
        reason: str,
        code: Optional[FailureCode] = None
    ):
        self.op_index = op_index
        self.paymaster = paymaster
        self.code = code or self.CODE
        super().__init__(reason)

    def __str__(self) -> str:
        party = self.paymaster or "account"
        return f"FailedOp(op={self.op_index}, {party}): {self.reason or '<no reason>'}"


class AddressMismatch(FailedOp):
    """The deployment target does not match the derived address."""
    CODE = FailureCode.ADDRESS_MISMATCH


class DeploymentFailed(FailedOp):
    """The derived address is already occupied or the init code is unusable."""
    CODE = FailureCode.DEPLOYMENT_FAILED


class PrefundNotPaid(FailedOp):
    """The account transferred less than the required prefund."""
    CODE = FailureCode.PREFUND_NOT_PAID


class UnexpectedPayment(FailedOp):
    """The account transferred value although its fee is covered by stake."""
    CODE = FailureCode.UNEXPECTED_PAYMENT


class VerificationBudgetExceeded(FailedOp):
    """Validation used more gas than the operation's verification budget."""
    CODE = FailureCode.VERIFICATION_BUDGET_EXCEEDED
