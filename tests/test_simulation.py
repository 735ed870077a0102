"""
Tests for the off-ledger simulation entry points and validation rule checks.
"""
import pytest

from aa_singleton.exceptions import FailedOp, OffChainOnly
from aa_singleton.samples import SimpleWallet
from aa_singleton.signing import fill_and_sign

from tests.test_helpers import (
    DEPLOYER, ONE_ETHER, BlockReadingWallet, GasPriceReadingWallet, NosyWallet, allow_call,
    count_call_data, deploy_paymaster, deploy_wallet, exec_count_call_data,
    wallet_nonce,
)


@pytest.fixture
def op(chain, client, wallet, wallet_owner, counter):
    return fill_and_sign(chain, client.address, wallet_owner, sender=wallet,
                         call_data=count_call_data(counter), call_gas=200_000)


class TestSimulateWalletValidation:

    def test_returns_gas_and_changes_nothing(self, chain, client, wallet, op):
        balance = chain.get_balance(wallet)
        gas_used = client.simulate_wallet_validation(op)
        assert 0 < gas_used <= op.verification_gas
        assert wallet_nonce(chain, wallet) == 0
        assert chain.get_balance(wallet) == balance

    def test_must_be_called_off_chain(self, chain, client, op):
        with pytest.raises(OffChainOnly, match="must be called off-chain"):
            chain.transact(DEPLOYER, client.address, lambda ctx, s: s.simulate_wallet_validation(ctx, op))
        with pytest.raises(OffChainOnly):
            chain.call(DEPLOYER, client.address, lambda ctx, s: s.simulate_wallet_validation(ctx, op))

    def test_wrong_signature(self, chain, client, wallet, stranger):
        op = fill_and_sign(chain, client.address, stranger, sender=wallet)
        with pytest.raises(FailedOp, match="wrong signature"):
            client.simulate_wallet_validation(op)

    def test_account_creation(self, chain, client, wallet_owner):
        init_code = SimpleWallet.init_code(client.address, wallet_owner.address)
        address = client.get_account_address(init_code, 0)
        chain.fund(address, ONE_ETHER)
        op = fill_and_sign(chain, client.address, wallet_owner, init_code=init_code)

        creation_gas = client.simulate_wallet_validation(op)
        assert chain.get_code(address) is None

        deployed = deploy_wallet(chain, client, wallet_owner.address)
        plain = fill_and_sign(chain, client.address, wallet_owner, sender=deployed)
        assert creation_gas > client.simulate_wallet_validation(plain)

    def test_wrong_target(self, chain, client, wallet_owner):
        init_code = SimpleWallet.init_code(client.address, wallet_owner.address)
        op = fill_and_sign(chain, client.address, wallet_owner, init_code=init_code, target="0x" + "22" * 20)
        with pytest.raises(FailedOp, match="target doesn't match create2 address"):
            client.simulate_wallet_validation(op)


class TestSimulatePaymasterValidation:

    def test_without_paymaster(self, client, op):
        assert client.simulate_paymaster_validation(op, 30_000) == (b"", 0)

    def test_with_paymaster(self, chain, client, wallet, wallet_owner, counter):
        paymaster = deploy_paymaster(chain, client)
        allow_call(chain, paymaster, counter, "count()")
        op = fill_and_sign(chain, client.address, wallet_owner, sender=wallet, paymaster=paymaster,
                           call_data=exec_count_call_data(counter), call_gas=200_000)

        wallet_gas = client.simulate_wallet_validation(op)
        context, paymaster_gas = client.simulate_paymaster_validation(op, wallet_gas)
        assert context
        assert paymaster_gas > 0
        assert client.estimate_verification_gas(op) == wallet_gas + paymaster_gas

    def test_rejecting_paymaster(self, chain, client, wallet, wallet_owner, counter):
        paymaster = deploy_paymaster(chain, client)
        op = fill_and_sign(chain, client.address, wallet_owner, sender=wallet, paymaster=paymaster,
                           call_data=exec_count_call_data(counter), call_gas=200_000)
        with pytest.raises(FailedOp, match="call not whitelisted"):
            client.simulate_paymaster_validation(op, 30_000)


class TestValidationRules:

    def test_simple_wallet_is_clean(self, client, op):
        assert client.check_validation_rules(op) == []

    def test_sponsored_op_is_clean(self, chain, client, wallet, wallet_owner, counter):
        paymaster = deploy_paymaster(chain, client)
        allow_call(chain, paymaster, counter, "count()")
        op = fill_and_sign(chain, client.address, wallet_owner, sender=wallet, paymaster=paymaster,
                           call_data=exec_count_call_data(counter), call_gas=200_000)
        assert client.check_validation_rules(op) == []

    def test_creation_is_clean(self, chain, client, wallet_owner):
        init_code = SimpleWallet.init_code(client.address, wallet_owner.address)
        chain.fund(client.get_account_address(init_code, 0), ONE_ETHER)
        op = fill_and_sign(chain, client.address, wallet_owner, init_code=init_code)
        assert client.check_validation_rules(op) == []

    def test_environment_read_is_flagged(self, chain, client, wallet_owner):
        reader = deploy_wallet(chain, client, wallet_owner.address, wallet_cls=BlockReadingWallet)
        op = fill_and_sign(chain, client.address, wallet_owner, sender=reader)
        [entry] = client.check_validation_rules(op)
        assert entry.kind == "block_number"
        assert entry.address == reader

    def test_gas_price_read_is_flagged(self, chain, client, wallet_owner):
        reader = deploy_wallet(chain, client, wallet_owner.address, wallet_cls=GasPriceReadingWallet)
        op = fill_and_sign(chain, client.address, wallet_owner, sender=reader)
        [entry] = client.check_validation_rules(op)
        assert entry.kind == "gas_price"
        assert entry.address == reader

    def test_foreign_storage_is_flagged(self, chain, client, wallet_owner, counter):
        nosy = deploy_wallet(chain, client, wallet_owner.address, wallet_cls=NosyWallet, extra_args=(counter,))
        op = fill_and_sign(chain, client.address, wallet_owner, sender=nosy)
        [entry] = client.check_validation_rules(op)
        assert entry.kind == "sload"
        assert entry.address == counter
