"""
Tests for the collateral ledger: deposits, timed withdrawals and adequacy checks.
"""
import pytest

from aa_singleton.config import SingletonConfig
from aa_singleton.exceptions import InsufficientStake, StillLocked
from aa_singleton.utils import ZERO_ADDRESS

from tests.test_helpers import DEPLOYER, ONE_ETHER, create_world

STAKER = "0x0000000000000000000000000000000000005157"
DESTINATION = "0x000000000000000000000000000000000000dEaD"
DELAY = 10


@pytest.fixture
def locked_world():
    chain, client = create_world(SingletonConfig(unstake_delay_blocks=DELAY))
    chain.fund(STAKER, 10 * ONE_ETHER)
    return chain, client


def is_staked(chain, client, owner, min_amount, delay):
    return chain.call(
        ZERO_ADDRESS, client.address,
        lambda ctx, s: s.stakes.is_adequately_staked(ctx, owner, min_amount, delay)
    ).result


class TestDeposit:

    def test_deposit_accumulates(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        receipt = client.deposit(STAKER, ONE_ETHER // 2)

        stake = client.get_stake(STAKER)
        assert stake.amount == 3 * ONE_ETHER // 2
        assert stake.withdraw_block == 0
        [event] = receipt.events("Deposited")
        assert event.total_stake == stake.amount
        assert chain.get_balance(client.address) == stake.amount

    def test_deposit_paid_by_someone_else(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER, payer=DEPLOYER)
        assert client.get_stake(STAKER).amount == ONE_ETHER
        assert client.get_stake(DEPLOYER).amount == 0

    def test_unknown_owner_has_empty_stake(self, locked_world):
        _, client = locked_world
        stake = client.get_stake(DESTINATION)
        assert (stake.owner, stake.amount, stake.withdraw_block) == (DESTINATION, 0, 0)


class TestWithdraw:

    def test_withdraw_without_request(self, locked_world):
        _, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        with pytest.raises(StillLocked, match="no withdrawal requested"):
            client.withdraw(STAKER, 1, DESTINATION)

    def test_withdraw_before_unlock(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        receipt = client.request_withdraw(STAKER)
        [event] = receipt.events("WithdrawRequested")
        assert event.withdraw_block == receipt.block_number + DELAY
        assert client.get_stake(STAKER).withdraw_block == event.withdraw_block

        with pytest.raises(StillLocked, match="locked until block"):
            client.withdraw(STAKER, 1, DESTINATION)
        assert client.get_stake(STAKER).amount == ONE_ETHER

    def test_partial_then_full_withdrawal(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        client.request_withdraw(STAKER)
        chain.mine(DELAY)

        receipt = client.withdraw(STAKER, 4 * ONE_ETHER // 10, DESTINATION)
        [event] = receipt.events("Withdrawn")
        assert (event.owner, event.destination, event.amount) == (STAKER, DESTINATION, 4 * ONE_ETHER // 10)
        assert chain.get_balance(DESTINATION) == 4 * ONE_ETHER // 10
        stake = client.get_stake(STAKER)
        assert stake.amount == 6 * ONE_ETHER // 10
        assert stake.withdraw_requested

        with pytest.raises(InsufficientStake):
            client.withdraw(STAKER, 7 * ONE_ETHER // 10, DESTINATION)

        client.withdraw(STAKER, 6 * ONE_ETHER // 10, DESTINATION)
        stake = client.get_stake(STAKER)
        assert stake.amount == 0
        assert stake.withdraw_block == 0
        assert chain.get_balance(DESTINATION) == ONE_ETHER

    def test_new_request_restarts_the_delay(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        first = client.request_withdraw(STAKER).events("WithdrawRequested")[0].withdraw_block
        chain.mine(DELAY)
        second = client.request_withdraw(STAKER).events("WithdrawRequested")[0].withdraw_block
        assert second > first
        with pytest.raises(StillLocked):
            client.withdraw(STAKER, 1, DESTINATION)

    def test_stake_errors_carry_owner(self, locked_world):
        _, client = locked_world
        with pytest.raises(StillLocked) as exc_info:
            client.withdraw(STAKER, 1, DESTINATION)
        assert exc_info.value.owner == STAKER


class TestAdequacy:

    def test_amount_threshold(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        assert is_staked(chain, client, STAKER, ONE_ETHER, DELAY)
        assert not is_staked(chain, client, STAKER, ONE_ETHER + 1, DELAY)

    def test_pending_withdrawal_must_keep_the_lock(self, locked_world):
        chain, client = locked_world
        client.deposit(STAKER, ONE_ETHER)
        client.request_withdraw(STAKER)
        # one block has passed since the request
        assert is_staked(chain, client, STAKER, 0, DELAY - 1)
        assert not is_staked(chain, client, STAKER, 0, DELAY)
        chain.mine(DELAY)
        assert not is_staked(chain, client, STAKER, 0, 0)
