"""
The singleton: one shared program that validates, executes and settles
batches of user operations.

Every operation goes through the same pipeline:

1. Prepayment validation: deploy the account if the operation carries init
   code, pick who pays (account balance, account stake or paymaster stake),
   and let the account validate itself and transfer its prefund.
2. Paymaster validation (only when a paymaster is named): check its stake and
   let it agree to pay, capturing a context blob.
3. Execution of the requested call, in a nested scope. A failing call never
   fails the batch.
4. Settlement: charge the actual cost, refund the rest, let the paymaster
   book the cost, and emit a ``UserOperationEvent``.

``handle_ops`` runs step 1-2 for every operation before running 3-4 for any of
them, so a batch with one invalid operation reverts before anything executed.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from ._rate_limited_log import rate_limited_log
from .chain import CallContext, Program, external
from .exceptions import (
    AddressMismatch, CallOutOfGas, DeploymentFailed, FailedOp, FailureCode,
    OffChainOnly, PrefundInsufficient, PrefundNotPaid, Revert,
    UnexpectedPayment, VerificationBudgetExceeded,
)
from .gas import keccak_gas
from .interfaces import AccountProgram, PaymasterProgram
from .models import (
    USER_OP_TUPLE, AccountDeployed, ExecutionOutcome, PaymentMode, PostOpReverted,
    StakeRecord, UserOperation, UserOperationEvent, UserOperationRevertReason,
)
from .stake_manager import StakeManager
from .utils import ZERO_ADDRESS, get_create2_address, to_address

logger = logging.getLogger(__name__)


@dataclass
class OpInfo:
    """What validation hands over to execution and settlement for one operation."""
    request_id: bytes
    prefund: int
    mode: PaymentMode
    context: bytes
    pre_op_gas: int


class Singleton(Program):
    """
    Batch dispatcher and collateral ledger.

    Constructor args:
        per_op_overhead: Gas added to every operation's cost for the work the
            singleton does outside the measured sections
        unstake_delay_blocks: Blocks a withdrawal request must wait, and the
            minimum lock a paymaster must keep while sponsoring
        paymaster_stake: Stake a paymaster must hold on top of the worst-case
            cost of an operation it sponsors
    """
    CODE_NAME = "Singleton"
    CONSTRUCTOR_TYPES = ("uint256", "uint256", "uint256")

    def constructor(self, ctx: CallContext, per_op_overhead: int,
                    unstake_delay_blocks: int, paymaster_stake: int) -> None:
        self.per_op_overhead = per_op_overhead
        self.paymaster_stake = paymaster_stake
        self.stakes = StakeManager(unstake_delay_blocks)

    @property
    def unstake_delay_blocks(self) -> int:
        return self.stakes.unstake_delay_blocks

    # ------------------------------------------------------------------ batches

    def handle_ops(self, ctx: CallContext, ops: Sequence[UserOperation], beneficiary: str) -> int:
        """
        Validate every operation, then execute and settle each in order.

        Args:
            ctx: Frame of the submitting transaction
            ops: Operations, in the order they are processed
            beneficiary: Receives the fees collected for the whole batch

        Returns:
            Total wei transferred to ``beneficiary``

        Raises:
            FailedOp: If any operation fails validation; nothing is executed
        """
        beneficiary = to_address(beneficiary)
        ctx.require(beneficiary != ZERO_ADDRESS, "invalid beneficiary")

        infos: List[OpInfo] = []
        # prefunds already admitted against each paymaster's stake
        reserved: Dict[str, int] = {}
        for op_index, op in enumerate(ops):
            info = self._validate_prepayment(ctx, op_index, op, reserved.get(op.paymaster, 0))
            if info.mode is PaymentMode.SPONSOR_STAKE:
                reserved[op.paymaster] = reserved.get(op.paymaster, 0) + info.prefund
            infos.append(info)

        collected = 0
        for op_index, op in enumerate(ops):
            collected += self._execute_user_op(ctx, op_index, op, infos[op_index])

        ctx.transfer(beneficiary, collected)
        logger.info(f"Handled {len(infos)} operation(s), paid {collected} wei to {beneficiary}")
        return collected

    def handle_op(self, ctx: CallContext, op: UserOperation, beneficiary: str) -> int:
        """Single-operation form of ``handle_ops``."""
        beneficiary = to_address(beneficiary)
        ctx.require(beneficiary != ZERO_ADDRESS, "invalid beneficiary")
        info = self._validate_prepayment(ctx, 0, op)
        collected = self._execute_user_op(ctx, 0, op, info)
        ctx.transfer(beneficiary, collected)
        logger.info(f"Handled 1 operation, paid {collected} wei to {beneficiary}")
        return collected

    # --------------------------------------------------------------- simulation

    def _require_off_chain(self, ctx: CallContext) -> None:
        if ctx.sender != ZERO_ADDRESS:
            raise OffChainOnly("must be called off-chain")

    def simulate_wallet_validation(self, ctx: CallContext, op: UserOperation) -> int:
        """
        Run account validation (including deployment) without committing it.

        Only reachable through an off-ledger call from the zero address.

        Returns:
            Gas used by the validation
        """
        self._require_off_chain(ctx)
        _, _, _, gas_used = self._validate_account(ctx, 0, op)
        return gas_used

    def simulate_paymaster_validation(
        self,
        ctx: CallContext,
        op: UserOperation,
        gas_used_by_wallet: int
    ) -> Tuple[bytes, int]:
        """
        Run paymaster validation, given the gas account validation used.

        Returns:
            Tuple of (context, gas used); ``(b"", 0)`` without a paymaster
        """
        self._require_off_chain(ctx)
        if not op.has_paymaster():
            return b"", 0
        gas_before = ctx.gas.remaining
        prefund, _ = self._get_payment_info(ctx, op)
        context = self._validate_paymaster_prepayment(
            ctx, 0, op, self.get_request_id(ctx, op), prefund, gas_used_by_wallet
        )
        return context, gas_before - ctx.gas.remaining

    # -------------------------------------------------------------------- stake

    @external("depositTo(address)")
    def deposit_to(self, ctx: CallContext, owner: str) -> StakeRecord:
        """Lock the value sent with the call as stake of ``owner``."""
        return self.stakes.deposit(ctx, to_address(owner), ctx.value)

    @external("requestWithdraw()", returns=("uint256",))
    def request_withdraw(self, ctx: CallContext) -> int:
        return self.stakes.request_withdraw(ctx, ctx.sender)

    @external("withdraw(uint256,address)")
    def withdraw(self, ctx: CallContext, amount: int, destination: str) -> StakeRecord:
        return self.stakes.withdraw(ctx, ctx.sender, amount, to_address(destination))

    def get_stake(self, ctx: CallContext, owner: str) -> StakeRecord:
        return self.stakes.get_stake(ctx, to_address(owner))

    @external("getStake(address)", returns=("uint256", "uint256"))
    def _get_stake_abi(self, ctx: CallContext, owner: str) -> Tuple[int, int]:
        record = self.get_stake(ctx, owner)
        return record.amount, record.withdraw_block

    # ------------------------------------------------------------------ helpers

    @external("getAccountAddress(bytes,uint256)", returns=("address",))
    def get_account_address(self, ctx: CallContext, init_code: bytes, salt: int) -> str:
        """Counterfactual address of an account deployed through this singleton."""
        return get_create2_address(self.address, salt, init_code)

    def get_request_id(self, ctx: CallContext, op: UserOperation) -> bytes:
        return op.request_id(self.address, ctx.chain_id)

    @external(f"handleOps({USER_OP_TUPLE}[],address)", returns=("uint256",))
    def _handle_ops_abi(self, ctx: CallContext, op_tuples, beneficiary: str) -> int:
        return self.handle_ops(ctx, [UserOperation.from_tuple(t) for t in op_tuples], beneficiary)

    @external(f"handleOp({USER_OP_TUPLE},address)", returns=("uint256",))
    def _handle_op_abi(self, ctx: CallContext, op_tuple, beneficiary: str) -> int:
        return self.handle_op(ctx, UserOperation.from_tuple(op_tuple), beneficiary)

    # --------------------------------------------------------------- validation

    def _create_target_if_needed(self, ctx: CallContext, op_index: int,
                                 op: UserOperation, request_id: bytes) -> None:
        if not op.init_code:
            return
        target = op.get_target()
        derived = get_create2_address(self.address, op.nonce, op.init_code)
        if ctx.code_exists(derived):
            raise DeploymentFailed(op_index, None, "create2 failed: account already deployed")
        if derived != target:
            raise AddressMismatch(op_index, None, "target doesn't match create2 address")
        try:
            ctx.create2(op.init_code, op.nonce)
        except Revert as e:
            raise DeploymentFailed(op_index, None, f"create2 failed: {e.reason}")
        ctx.emit(AccountDeployed(request_id=request_id, sender=target))
        logger.debug(f"op {op_index}: deployed account {target}")

    def _get_payment_info(self, ctx: CallContext, op: UserOperation) -> Tuple[int, PaymentMode]:
        prefund = op.required_prefund(self.per_op_overhead)
        if op.has_paymaster():
            return prefund, PaymentMode.SPONSOR_STAKE
        if self.stakes.is_adequately_staked(ctx, op.sender, prefund, 0):
            return prefund, PaymentMode.ACCOUNT_STAKE
        return prefund, PaymentMode.ACCOUNT_BALANCE

    def _validate_wallet_prepayment(
        self,
        ctx: CallContext,
        op_index: int,
        op: UserOperation,
        request_id: bytes,
        prefund: int,
        mode: PaymentMode
    ) -> int:
        """
        Call the account's validation and reconcile what it paid.

        Returns:
            The prefund actually held for the operation
        """
        required_payment = prefund if mode is PaymentMode.ACCOUNT_BALANCE else 0

        def validate(child: CallContext, account: Program) -> None:
            if not isinstance(account, AccountProgram):
                raise Revert("sender is not an account")
            account.validate_user_op(child, op, request_id, required_payment)

        balance_before = ctx.balance_of(self.address)
        try:
            ctx.invoke(op.sender, validate, gas=op.verification_gas)
        except CallOutOfGas:
            raise VerificationBudgetExceeded(op_index, None, "account validation ran out of gas")
        except Revert as e:
            raise FailedOp(op_index, None, e.reason or "account validation reverted")
        paid = ctx.balance_of(self.address) - balance_before

        if mode is PaymentMode.ACCOUNT_BALANCE:
            if paid < prefund:
                raise PrefundNotPaid(op_index, None, "didn't pay prefund")
            return paid
        if paid != 0:
            raise UnexpectedPayment(op_index, None, f"unexpected payment of {paid} wei in {mode.value} mode")
        if mode is PaymentMode.ACCOUNT_STAKE:
            self.stakes.debit(ctx, op.sender, prefund)
        return prefund

    def _validate_paymaster_prepayment(
        self,
        ctx: CallContext,
        op_index: int,
        op: UserOperation,
        request_id: bytes,
        prefund: int,
        gas_used_by_wallet: int,
        reserved: int = 0
    ) -> bytes:
        """
        Check the paymaster's stake and let it agree to pay. Returns its context.

        ``reserved`` is what earlier operations of the same batch already
        hold against this paymaster's stake.
        """
        staked = self.stakes.is_adequately_staked(
            ctx, op.paymaster, self.paymaster_stake + reserved + prefund, self.stakes.unstake_delay_blocks
        )
        if not staked:
            raise FailedOp(op_index, op.paymaster, "paymaster not staked", code=FailureCode.INSUFFICIENT_STAKE)
        budget = op.verification_gas - gas_used_by_wallet
        if budget <= 0:
            raise VerificationBudgetExceeded(op_index, op.paymaster, "no verification gas left for paymaster")

        def validate(child: CallContext, paymaster: Program) -> bytes:
            if not isinstance(paymaster, PaymasterProgram):
                raise Revert("not a paymaster")
            return paymaster.validate_paymaster_user_op(child, op, request_id, prefund)

        try:
            context = ctx.invoke(op.paymaster, validate, gas=budget)
        except CallOutOfGas:
            raise VerificationBudgetExceeded(op_index, op.paymaster, "paymaster validation ran out of gas")
        except Revert as e:
            raise FailedOp(
                op_index, op.paymaster, e.reason or "paymaster validation reverted",
                code=FailureCode.PAYMASTER_REVERTED
            )
        return bytes(context or b"")

    def _validate_account(
        self,
        ctx: CallContext,
        op_index: int,
        op: UserOperation
    ) -> Tuple[bytes, int, PaymentMode, int]:
        gas_before = ctx.gas.remaining
        ctx.use_gas(keccak_gas(len(op.pack())), "request id")
        request_id = self.get_request_id(ctx, op)
        self._create_target_if_needed(ctx, op_index, op, request_id)
        prefund, mode = self._get_payment_info(ctx, op)
        prefund = self._validate_wallet_prepayment(ctx, op_index, op, request_id, prefund, mode)
        return request_id, prefund, mode, gas_before - ctx.gas.remaining

    def _validate_prepayment(self, ctx: CallContext, op_index: int, op: UserOperation,
                             reserved: int = 0) -> OpInfo:
        gas_before = ctx.gas.remaining
        request_id, prefund, mode, gas_used_by_wallet = self._validate_account(ctx, op_index, op)

        context = b""
        if mode is PaymentMode.SPONSOR_STAKE:
            context = self._validate_paymaster_prepayment(
                ctx, op_index, op, request_id, prefund, gas_used_by_wallet, reserved
            )

        gas_used = gas_before - ctx.gas.remaining
        if gas_used > op.verification_gas:
            paymaster = op.paymaster if mode is PaymentMode.SPONSOR_STAKE else None
            raise VerificationBudgetExceeded(
                op_index, paymaster, f"used {gas_used} gas, verification gas is {op.verification_gas}"
            )
        logger.debug(f"op {op_index}: validated in {mode.value} mode, prefund {prefund}, gas {gas_used}")
        return OpInfo(
            request_id=request_id,
            prefund=prefund,
            mode=mode,
            context=context,
            pre_op_gas=gas_used + self.per_op_overhead,
        )

    # ---------------------------------------------------- execution/settlement

    def _execute_user_op(self, ctx: CallContext, op_index: int, op: UserOperation, info: OpInfo) -> int:
        """
        Execute and settle one validated operation. Returns the fee it owes.

        Execution and the first settlement attempt share a nested scope. If
        that scope fails (the paymaster's post_op reverted, or execution ran
        the scope out of gas) everything in it is undone and settlement runs
        again in ``POST_OP_REVERTED`` mode, so the fee is always collected.
        """
        gas_before = ctx.gas.remaining
        try:
            return ctx.invoke(self.address, lambda child, me: me._internal_handle_op(child, op, info))
        except PrefundInsufficient:
            raise
        except Revert as e:
            logger.debug(f"op {op_index}: execution scope reverted ({e}), settling again")
            actual_gas = gas_before - ctx.gas.remaining + info.pre_op_gas
            return self._handle_post_op(ctx, ExecutionOutcome.POST_OP_REVERTED, op, info, actual_gas)

    def _internal_handle_op(self, ctx: CallContext, op: UserOperation, info: OpInfo) -> int:
        ctx.require(ctx.sender == self.address, "internal call only")
        outcome = ExecutionOutcome.SUCCEEDED
        if op.call_data:
            result = ctx.call(op.get_target(), op.call_data, gas=op.call_gas)
            if not result.success:
                outcome = ExecutionOutcome.CALL_REVERTED
                if result.return_data:
                    ctx.emit(UserOperationRevertReason(
                        request_id=info.request_id,
                        sender=op.sender,
                        nonce=op.nonce,
                        revert_reason=result.return_data,
                    ))
        actual_gas = ctx.gas.used + info.pre_op_gas
        return self._handle_post_op(ctx, outcome, op, info, actual_gas)

    def _handle_post_op(
        self,
        ctx: CallContext,
        outcome: ExecutionOutcome,
        op: UserOperation,
        info: OpInfo,
        actual_gas: int
    ) -> int:
        gas_before = ctx.gas.remaining
        gas_price = op.gas_price(ctx.base_fee)
        actual_cost = actual_gas * gas_price

        if info.mode is not PaymentMode.SPONSOR_STAKE:
            if info.prefund < actual_cost:
                raise PrefundInsufficient(
                    f"prefund {info.prefund} below actual gas cost {actual_cost}"
                )
            refund = info.prefund - actual_cost
            if info.mode is PaymentMode.ACCOUNT_STAKE:
                self.stakes.credit(ctx, op.sender, refund)
            else:
                ctx.transfer(op.sender, refund)
        else:
            if info.context:
                self._call_post_op(ctx, outcome, op, info, actual_cost)
            actual_gas += gas_before - ctx.gas.remaining
            actual_cost = actual_gas * gas_price
            self.stakes.debit(ctx, op.paymaster, actual_cost)

        ctx.emit(UserOperationEvent(
            request_id=info.request_id,
            sender=op.sender,
            paymaster=op.paymaster,
            nonce=op.nonce,
            actual_gas_cost=actual_cost,
            actual_gas_price=gas_price,
            success=outcome is ExecutionOutcome.SUCCEEDED,
        ))
        return actual_cost

    def _call_post_op(self, ctx: CallContext, outcome: ExecutionOutcome,
                      op: UserOperation, info: OpInfo, actual_cost: int) -> None:
        """
        Let the paymaster book the cost. Outside ``POST_OP_REVERTED`` mode a
        revert unwinds the execution scope; in that mode it is only recorded.
        """
        def post_op(child: CallContext, paymaster: Program) -> None:
            paymaster.post_op(child, outcome, info.context, actual_cost)

        if outcome is not ExecutionOutcome.POST_OP_REVERTED:
            ctx.invoke(op.paymaster, post_op, gas=op.verification_gas)
            return
        try:
            ctx.invoke(op.paymaster, post_op, gas=op.verification_gas)
        except Revert as e:
            reason = e.reason or "post_op reverted"
            ctx.emit(PostOpReverted(
                request_id=info.request_id,
                sender=op.sender,
                paymaster=op.paymaster,
                reason=reason,
            ))
            rate_limited_log(
                f"post_op of paymaster {op.paymaster} failed ({FailureCode.SPONSOR_FINALIZE_FAILED.value}): {reason}",
                logger_instance=logger
            )
