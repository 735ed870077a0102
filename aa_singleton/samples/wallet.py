"""
Minimal account: one owner key, sequential nonce, pays its own prefund.
"""
import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from ..chain import CallContext, Program, external
from ..exceptions import Revert
from ..gas import G_ECRECOVER
from ..models import UserOperation
from ..utils import to_address

logger = logging.getLogger(__name__)


class SimpleWallet(Program):
    """
    Constructor args:
        singleton: The only caller allowed to validate operations
        owner: Address whose signature authorizes operations
    """
    CODE_NAME = "SimpleWallet"
    CONSTRUCTOR_TYPES = ("address", "address")

    def constructor(self, ctx: CallContext, singleton: str, owner: str) -> None:
        self.singleton = to_address(singleton)
        self.owner = to_address(owner)

    def nonce(self, ctx: CallContext) -> int:
        return ctx.sload("nonce")

    def validate_user_op(self, ctx: CallContext, op: UserOperation,
                         request_id: bytes, required_prefund: int) -> None:
        ctx.require(ctx.sender == self.singleton, "wallet: not from singleton")
        nonce = ctx.sload("nonce")
        ctx.require(op.nonce == nonce, "wallet: invalid nonce")
        ctx.sstore("nonce", nonce + 1)

        ctx.use_gas(G_ECRECOVER, "ecrecover")
        try:
            signer = Account.recover_message(encode_defunct(primitive=request_id), signature=op.signature)
        except Exception:
            raise Revert("wrong signature")
        ctx.require(to_address(signer) == self.owner, "wrong signature")

        if required_prefund:
            # best effort: a short payment is caught by the singleton
            ctx.send_value(ctx.sender, required_prefund)

    @external("execFromSingleton(bytes)")
    def exec_from_singleton(self, ctx: CallContext, func: bytes) -> None:
        """Run ``func`` against the wallet itself, on behalf of the singleton."""
        ctx.require(ctx.sender == self.singleton, "wallet: not from singleton")
        result = ctx.call(self.address, func)
        if not result.success:
            raise Revert.from_data(result.return_data)

    @external("exec(address,bytes)")
    def exec(self, ctx: CallContext, dest: str, func: bytes) -> None:
        ctx.require(
            ctx.sender in (self.owner, self.address, self.singleton),
            "wallet: not owner or singleton"
        )
        result = ctx.call(to_address(dest), func)
        if not result.success:
            raise Revert.from_data(result.return_data)

    @external("transfer(address,uint256)")
    def transfer(self, ctx: CallContext, dest: str, amount: int) -> None:
        ctx.require(ctx.sender in (self.owner, self.address), "wallet: not owner")
        ctx.transfer(to_address(dest), amount)

    @external("addDeposit()")
    def add_deposit(self, ctx: CallContext) -> None:
        """Forward the value sent to the wallet into its stake at the singleton."""
        ctx.invoke(self.singleton, lambda child, singleton: singleton.deposit_to(child, self.address),
                   value=ctx.value)

    @external("getNonce()", returns=("uint256",))
    def get_nonce(self, ctx: CallContext) -> int:
        return self.nonce(ctx)

    @external("owner()", returns=("address",))
    def get_owner(self, ctx: CallContext) -> str:
        return self.owner
