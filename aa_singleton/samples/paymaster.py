"""
Paymaster that sponsors whitelisted ``exec`` calls, up to a per-sender quota.
"""
import logging

from eth_abi import decode, encode

from ..chain import CallContext, Program, external
from ..exceptions import Revert
from ..exec_lib import decode_exec_method, is_exec
from ..models import ExecutionOutcome, UserOperation
from ..utils import to_address

logger = logging.getLogger(__name__)

CONTEXT_TYPES = ["address", "uint256"]


class ExecWhitelistPaymaster(Program):
    """
    Constructor args:
        singleton: Singleton this paymaster stakes with
        owner: Address allowed to manage the whitelist and the stake
        quota: Maximum wei sponsored per sender, counted at worst-case cost
            during validation and at actual cost afterwards
    """
    CODE_NAME = "ExecWhitelistPaymaster"
    CONSTRUCTOR_TYPES = ("address", "address", "uint256")

    def constructor(self, ctx: CallContext, singleton: str, owner: str, quota: int) -> None:
        self.singleton = to_address(singleton)
        self.owner = to_address(owner)
        self.quota = quota

    def _only_owner(self, ctx: CallContext) -> None:
        ctx.require(ctx.sender == self.owner, "paymaster: not owner")

    # ---------------------------------------------------------------- whitelist

    @external("allow(address,bytes4)")
    def allow(self, ctx: CallContext, dest: str, method_sig: bytes) -> None:
        self._only_owner(ctx)
        ctx.sstore(("allowed", to_address(dest), bytes(method_sig)), True)

    @external("isAllowed(address,bytes4)", returns=("bool",))
    def is_allowed(self, ctx: CallContext, dest: str, method_sig: bytes) -> bool:
        return ctx.sload(("allowed", to_address(dest), bytes(method_sig)), False)

    @external("spent(address)", returns=("uint256",))
    def spent(self, ctx: CallContext, sender: str) -> int:
        return ctx.sload(("spent", to_address(sender)))

    # -------------------------------------------------------------------- stake

    @external("addStake()")
    def add_stake(self, ctx: CallContext) -> None:
        ctx.invoke(self.singleton, lambda child, singleton: singleton.deposit_to(child, self.address),
                   value=ctx.value)

    @external("requestWithdraw()")
    def request_withdraw(self, ctx: CallContext) -> None:
        self._only_owner(ctx)
        ctx.invoke(self.singleton, lambda child, singleton: singleton.request_withdraw(child))

    @external("withdrawStake(uint256,address)")
    def withdraw_stake(self, ctx: CallContext, amount: int, destination: str) -> None:
        self._only_owner(ctx)
        ctx.invoke(self.singleton,
                   lambda child, singleton: singleton.withdraw(child, amount, to_address(destination)))

    # ------------------------------------------------------------- sponsorship

    def validate_paymaster_user_op(self, ctx: CallContext, op: UserOperation,
                                   request_id: bytes, max_cost: int) -> bytes:
        ctx.require(ctx.sender == self.singleton, "paymaster: not from singleton")
        if not is_exec(op.call_data):
            raise Revert("paymaster: only exec calls are sponsored")
        try:
            inner = decode_exec_method(op.call_data)
        except ValueError as e:
            raise Revert(f"paymaster: {e}")
        allowed = ctx.sload(("allowed", inner.dest, inner.method_sig), False)
        ctx.require(allowed, "paymaster: call not whitelisted")
        spent = ctx.sload(("spent", op.sender))
        ctx.require(spent + max_cost <= self.quota, "paymaster: quota exceeded")
        return encode(CONTEXT_TYPES, [op.sender, max_cost])

    def post_op(self, ctx: CallContext, mode: ExecutionOutcome,
                context: bytes, actual_gas_cost: int) -> None:
        ctx.require(ctx.sender == self.singleton, "paymaster: not from singleton")
        sender, _ = decode(CONTEXT_TYPES, context)
        key = ("spent", to_address(sender))
        ctx.sstore(key, ctx.sload(key) + actual_gas_cost)
        logger.debug(f"Booked {actual_gas_cost} wei for {sender} ({mode.value})")
