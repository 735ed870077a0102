"""
aa-singleton - a shared account-abstraction dispatcher on a metered ledger.
"""
from .chain import CallContext, CallOutcome, CallResult, Chain, Program, TraceEntry, external
from .client import SingletonClient
from .config import NetworkConfig, SingletonConfig
from .exceptions import (
    AccountAbstractionError, AddressMismatch, CallOutOfGas, DeploymentFailed,
    FailedOp, FailureCode, InsufficientBalance, InsufficientStake, OffChainOnly,
    OutOfGas, PrefundInsufficient, PrefundNotPaid, Revert, StakeError,
    StillLocked, TransactionError, UnexpectedPayment, VerificationBudgetExceeded,
)
from .interfaces import AccountProgram, PaymasterProgram
from .models import (
    ExecutionOutcome, PaymentMode, StakeRecord, TxReceipt, UserOperation,
    UserOperationEvent,
)
from .signing import DEFAULTS_FOR_USER_OP, fill_and_sign, fill_user_op, sign_user_op
from .singleton import Singleton
from .version import __version__

__all__ = [
    "AccountAbstractionError",
    "AccountProgram",
    "AddressMismatch",
    "CallContext",
    "CallOutOfGas",
    "CallOutcome",
    "CallResult",
    "Chain",
    "DEFAULTS_FOR_USER_OP",
    "DeploymentFailed",
    "ExecutionOutcome",
    "FailedOp",
    "FailureCode",
    "InsufficientBalance",
    "InsufficientStake",
    "NetworkConfig",
    "OffChainOnly",
    "OutOfGas",
    "PaymasterProgram",
    "PaymentMode",
    "PrefundInsufficient",
    "PrefundNotPaid",
    "Program",
    "Revert",
    "Singleton",
    "SingletonClient",
    "SingletonConfig",
    "StakeError",
    "StakeRecord",
    "StillLocked",
    "TraceEntry",
    "TransactionError",
    "TxReceipt",
    "UnexpectedPayment",
    "UserOperation",
    "UserOperationEvent",
    "VerificationBudgetExceeded",
    "__version__",
    "external",
    "fill_and_sign",
    "fill_user_op",
    "sign_user_op",
]
