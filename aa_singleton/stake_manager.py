"""
Collateral ledger kept inside the singleton's storage.

Every method takes the singleton's own ``CallContext``, so reads and writes
are metered and journaled like any other storage access, and a reverted
scope rolls stake changes back with everything else.
"""
import logging
from typing import Tuple

from .chain import CallContext
from .exceptions import InsufficientStake, StillLocked
from .models import Deposited, StakeRecord, Withdrawn, WithdrawRequested

logger = logging.getLogger(__name__)


def _stake_key(owner: str) -> Tuple[str, str]:
    return ("stake", owner)


class StakeManager:
    """
    Per-address locked collateral with a timed unlock.

    Args:
        unstake_delay_blocks: Blocks between requesting a withdrawal and being
            allowed to perform it
    """

    def __init__(self, unstake_delay_blocks: int):
        if unstake_delay_blocks < 0:
            raise ValueError("unstake delay cannot be negative")
        self.unstake_delay_blocks = unstake_delay_blocks

    def get_stake(self, ctx: CallContext, owner: str) -> StakeRecord:
        amount, withdraw_block = ctx.sload(_stake_key(owner), (0, 0))
        return StakeRecord(owner=owner, amount=amount, withdraw_block=withdraw_block)

    def _store(self, ctx: CallContext, record: StakeRecord) -> None:
        ctx.sstore(_stake_key(record.owner), (record.amount, record.withdraw_block))

    def deposit(self, ctx: CallContext, owner: str, amount: int) -> StakeRecord:
        """Credit ``amount`` (already received by the singleton) to ``owner``."""
        record = self.credit(ctx, owner, amount)
        ctx.emit(Deposited(owner=owner, total_stake=record.amount))
        logger.debug(f"Deposit of {amount} wei for {owner}, stake now {record.amount}")
        return record

    def credit(self, ctx: CallContext, owner: str, amount: int) -> StakeRecord:
        if amount < 0:
            raise ValueError("credit amount cannot be negative")
        record = self.get_stake(ctx, owner)
        record.amount += amount
        self._store(ctx, record)
        return record

    def debit(self, ctx: CallContext, owner: str, amount: int) -> StakeRecord:
        """
        Take ``amount`` out of ``owner``'s stake.

        Raises:
            InsufficientStake: If the stake holds less than ``amount``
        """
        if amount < 0:
            raise ValueError("debit amount cannot be negative")
        record = self.get_stake(ctx, owner)
        if record.amount < amount:
            raise InsufficientStake(
                f"stake of {owner} is {record.amount}, cannot debit {amount}", owner=owner
            )
        record.amount -= amount
        self._store(ctx, record)
        return record

    def request_withdraw(self, ctx: CallContext, owner: str) -> int:
        """Start (or restart) the unlock delay. Returns the unlock block."""
        record = self.get_stake(ctx, owner)
        record.withdraw_block = ctx.block_number + self.unstake_delay_blocks
        self._store(ctx, record)
        ctx.emit(WithdrawRequested(owner=owner, withdraw_block=record.withdraw_block))
        logger.debug(f"Withdrawal requested for {owner}, unlocks at block {record.withdraw_block}")
        return record.withdraw_block

    def withdraw(self, ctx: CallContext, owner: str, amount: int, destination: str) -> StakeRecord:
        """
        Pay ``amount`` of ``owner``'s stake out to ``destination``.

        Raises:
            StillLocked: If no withdrawal was requested or the unlock block
                hasn't been reached
            InsufficientStake: If the stake holds less than ``amount``
        """
        record = self.get_stake(ctx, owner)
        if not record.withdraw_requested:
            raise StillLocked(f"no withdrawal requested for {owner}", owner=owner)
        if ctx.block_number < record.withdraw_block:
            raise StillLocked(
                f"stake of {owner} locked until block {record.withdraw_block}", owner=owner
            )
        if record.amount < amount:
            raise InsufficientStake(
                f"stake of {owner} is {record.amount}, cannot withdraw {amount}", owner=owner
            )
        record.amount -= amount
        if record.amount == 0:
            record.withdraw_block = 0
        self._store(ctx, record)
        ctx.transfer(destination, amount)
        ctx.emit(Withdrawn(owner=owner, destination=destination, amount=amount))
        return record

    def is_adequately_staked(
        self,
        ctx: CallContext,
        owner: str,
        min_amount: int,
        required_unlock_delay: int
    ) -> bool:
        """
        True iff the stake covers ``min_amount`` and, when a withdrawal is
        pending, at least ``required_unlock_delay`` blocks of lock remain.
        """
        record = self.get_stake(ctx, owner)
        if record.amount < min_amount:
            return False
        if not record.withdraw_requested:
            return True
        return record.withdraw_block - ctx.block_number >= required_unlock_delay
