"""
SingletonClient - submission surface for a deployed singleton.
"""
import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .chain import Chain, CallContext, TraceEntry, encode_call
from .config import SingletonConfig
from .exceptions import Revert, TransactionError
from .gas import DEFAULT_TX_GAS_LIMIT
from .models import USER_OP_TUPLE, StakeRecord, TxReceipt, UserOperation
from .singleton import Singleton
from .tracing import find_banned_ops
from .utils import ZERO_ADDRESS, get_create2_address, to_address

HANDLE_OPS_SIGNATURE = f"handleOps({USER_OP_TUPLE}[],address)"
HANDLE_OP_SIGNATURE = f"handleOp({USER_OP_TUPLE},address)"


class SingletonClient:
    """
    Client for submitting operations to a singleton and managing stake.

    To use this client, you'll need:
    - A ``Chain`` with a singleton deployed on it (see ``deploy``)
    - A funded bundler address that sends the batch transactions
    """

    def __init__(
        self,
        chain: Chain,
        singleton_address: str,
        bundler: Optional[str] = None,
        gas_limit: int = DEFAULT_TX_GAS_LIMIT,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the SingletonClient

        Args:
            chain: Ledger the singleton lives on
            singleton_address: Address of the deployed singleton
            bundler: Default sender of batch transactions
            gas_limit: Gas limit for every transaction sent by the client
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If no singleton is deployed at ``singleton_address``
        """
        self.chain = chain
        self.address = to_address(singleton_address)
        if not isinstance(chain.get_code(self.address), Singleton):
            raise ValueError(f"No singleton deployed at {self.address}")
        self.bundler = to_address(bundler) if bundler else None
        self.gas_limit = gas_limit
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def deploy(
        cls,
        chain: Chain,
        deployer: str,
        config: Optional[SingletonConfig] = None,
        bundler: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ) -> "SingletonClient":
        """
        Deploy a new singleton and return a client for it.

        Args:
            chain: Ledger to deploy on
            deployer: Funded address sending the deployment
            config: Constructor parameters (defaults to ``SingletonConfig()``)
            bundler: Default sender of batch transactions (defaults to ``deployer``)
            logger: Optional logger instance
        """
        config = config or SingletonConfig()
        address, _ = chain.deploy(deployer, Singleton.init_code(*config.init_args()))
        return cls(chain, address, bundler=bundler or deployer, logger=logger)

    @property
    def singleton(self) -> Singleton:
        return self.chain.get_code(self.address)

    # ---------------------------------------------------------------- plumbing

    def _transact(
        self,
        action: str,
        sender: str,
        fn: Callable[[CallContext, Singleton], Any],
        value: int = 0,
        data: bytes = b""
    ) -> TxReceipt:
        try:
            receipt = self.chain.transact(
                sender, self.address, fn, value=value, gas_limit=self.gas_limit, data=data
            )
            self.logger.info(f"{action}: tx {receipt.tx_hash} (gas used: {receipt.gas_used})")
            return receipt
        except Revert as e:
            # Re-raise protocol failures unchanged
            self.logger.error(f"{action} reverted: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Unexpected error during {action}: {e}")
            raise TransactionError(f"{action} failed: {str(e)}") from e

    def _call(self, action: str, fn: Callable[[CallContext, Singleton], Any], trace: bool = False):
        try:
            return self.chain.call(ZERO_ADDRESS, self.address, fn, gas_limit=self.gas_limit, trace=trace)
        except Revert as e:
            self.logger.debug(f"{action} reverted: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Unexpected error during {action}: {e}")
            raise TransactionError(f"{action} failed: {str(e)}") from e

    def _require_bundler(self, sender: Optional[str]) -> str:
        sender = sender or self.bundler
        if not sender:
            raise ValueError("No sender given and no default bundler configured")
        return sender

    # ----------------------------------------------------------------- batches

    def handle_ops(
        self,
        ops: Sequence[UserOperation],
        beneficiary: str,
        sender: Optional[str] = None
    ) -> TxReceipt:
        """
        Submit a batch of operations.

        Args:
            ops: Operations in processing order
            beneficiary: Receives the fees collected for the batch
            sender: Transaction sender (defaults to the client's bundler)

        Returns:
            Transaction receipt, with one ``UserOperationEvent`` per operation

        Raises:
            FailedOp: If an operation failed validation; nothing was committed
            TransactionError: If the transaction failed for another reason
        """
        sender = self._require_bundler(sender)
        ops = list(ops)
        data = encode_call(HANDLE_OPS_SIGNATURE, [op.as_tuple() for op in ops], to_address(beneficiary))
        self.logger.debug(f"Submitting {len(ops)} operation(s), calldata {len(data)} bytes")
        return self._transact(
            "handle_ops", sender,
            lambda ctx, singleton: singleton.handle_ops(ctx, ops, beneficiary),
            data=data
        )

    def handle_op(self, op: UserOperation, beneficiary: str, sender: Optional[str] = None) -> TxReceipt:
        """Submit a single operation."""
        sender = self._require_bundler(sender)
        data = encode_call(HANDLE_OP_SIGNATURE, op.as_tuple(), to_address(beneficiary))
        return self._transact(
            "handle_op", sender,
            lambda ctx, singleton: singleton.handle_op(ctx, op, beneficiary),
            data=data
        )

    # -------------------------------------------------------------- simulation

    def simulate_wallet_validation(self, op: UserOperation) -> int:
        """Gas used by account validation (and deployment) of ``op``."""
        outcome = self._call(
            "simulate_wallet_validation",
            lambda ctx, singleton: singleton.simulate_wallet_validation(ctx, op)
        )
        return outcome.result

    def simulate_paymaster_validation(self, op: UserOperation, gas_used_by_wallet: int) -> Tuple[bytes, int]:
        """Context and gas used by paymaster validation of ``op``."""
        outcome = self._call(
            "simulate_paymaster_validation",
            lambda ctx, singleton: singleton.simulate_paymaster_validation(ctx, op, gas_used_by_wallet)
        )
        return outcome.result

    def estimate_verification_gas(self, op: UserOperation) -> int:
        """Verification gas ``op`` needs: account plus paymaster validation."""
        wallet_gas = self.simulate_wallet_validation(op)
        _, paymaster_gas = self.simulate_paymaster_validation(op, wallet_gas)
        return wallet_gas + paymaster_gas

    def check_validation_rules(self, op: UserOperation) -> List[TraceEntry]:
        """
        Simulate both validations with tracing and return the entries that
        read the environment or touch storage outside the account and
        paymaster. An empty list means ``op`` validates deterministically.
        """
        def simulate(ctx: CallContext, singleton: Singleton) -> None:
            gas_used = singleton.simulate_wallet_validation(ctx, op)
            singleton.simulate_paymaster_validation(ctx, op, gas_used)

        outcome = self._call("check_validation_rules", simulate, trace=True)
        owners = [op.sender, op.get_target()]
        if op.has_paymaster():
            owners.append(op.paymaster)
        return find_banned_ops(outcome.trace, exempt=[self.address], storage_owners=owners)

    # ------------------------------------------------------------------- stake

    def deposit(self, owner: str, amount: int, payer: Optional[str] = None) -> TxReceipt:
        """Lock ``amount`` wei, paid by ``payer`` (defaults to ``owner``), as stake of ``owner``."""
        owner = to_address(owner)
        return self._transact(
            "deposit", payer or owner,
            lambda ctx, singleton: singleton.deposit_to(ctx, owner),
            value=amount
        )

    def request_withdraw(self, owner: str) -> TxReceipt:
        return self._transact(
            "request_withdraw", owner,
            lambda ctx, singleton: singleton.request_withdraw(ctx)
        )

    def withdraw(self, owner: str, amount: int, destination: str) -> TxReceipt:
        destination = to_address(destination)
        return self._transact(
            "withdraw", owner,
            lambda ctx, singleton: singleton.withdraw(ctx, amount, destination)
        )

    def get_stake(self, owner: str) -> StakeRecord:
        outcome = self._call("get_stake", lambda ctx, singleton: singleton.get_stake(ctx, owner))
        return outcome.result

    # ----------------------------------------------------------------- helpers

    def get_account_address(self, init_code: bytes, salt: int) -> str:
        return get_create2_address(self.address, salt, init_code)

    def get_request_id(self, op: UserOperation) -> bytes:
        return op.request_id(self.address, self.chain.chain_id)
