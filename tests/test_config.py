"""
Tests for singleton and network configuration.
"""
import pytest
from pydantic import ValidationError

from aa_singleton.config import NetworkConfig, SingletonConfig
from aa_singleton.signing import fill_and_sign

from tests.test_helpers import BENEFICIARY, create_world, deploy_wallet, wallet_nonce


class TestSingletonConfig:

    def test_defaults(self):
        config = SingletonConfig()
        assert config.init_args() == (22000, 0, 10**18)

    def test_aliases(self):
        config = SingletonConfig(perOpOverhead=1, unstakeDelayBlocks=2, paymasterStake=3)
        assert config.init_args() == (1, 2, 3)

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            SingletonConfig(per_op_overhead=-1)

    def test_from_env(self):
        config = SingletonConfig.from_env({
            "AA_PER_OP_OVERHEAD": "30000",
            "AA_UNSTAKE_DELAY_BLOCKS": "0x10",
            "AA_PAYMASTER_STAKE": "",
        })
        assert config.per_op_overhead == 30000
        assert config.unstake_delay_blocks == 16
        assert config.paymaster_stake == 10**18

    def test_from_env_bad_value(self):
        with pytest.raises(ValueError, match="AA_PER_OP_OVERHEAD must be an integer"):
            SingletonConfig.from_env({"AA_PER_OP_OVERHEAD": "lots"})

    def test_from_process_environment(self, monkeypatch):
        monkeypatch.setenv("AA_UNSTAKE_DELAY_BLOCKS", "7")
        assert SingletonConfig.from_env().unstake_delay_blocks == 7


class TestNetworkConfig:

    def test_known_networks(self):
        networks = NetworkConfig.load_networks()
        assert {"local", "local-locked", "zero-fee"} <= set(networks)
        assert NetworkConfig.load_networks() is networks

    def test_get_chain_id(self):
        assert NetworkConfig.get_chain_id("local") == 1337
        assert NetworkConfig.get_chain_id("local-locked") == 31337

    def test_unknown_network(self):
        with pytest.raises(ValueError, match="Network 'mainnet' not found. Available networks:"):
            NetworkConfig.get_network("mainnet")

    def test_singleton_config(self):
        config = NetworkConfig.get_singleton_config("local-locked")
        assert config.unstake_delay_blocks == 100
        assert config.per_op_overhead == 22000

    def test_create_chain(self):
        chain = NetworkConfig.create_chain("zero-fee")
        assert chain.chain_id == 1338
        assert chain.base_fee == 0

    def test_operations_are_free_on_zero_fee_network(self, wallet_owner):
        chain = NetworkConfig.create_chain("zero-fee")
        chain, client = create_world(NetworkConfig.get_singleton_config("zero-fee"), chain=chain)
        wallet = deploy_wallet(chain, client, wallet_owner.address, funds=0)
        op = fill_and_sign(chain, client.address, wallet_owner, sender=wallet,
                           max_fee_per_gas=0, max_priority_fee_per_gas=0)

        receipt = client.handle_ops([op], BENEFICIARY)
        [event] = receipt.events("UserOperationEvent")
        assert event.success
        assert event.actual_gas_cost == 0
        assert wallet_nonce(chain, wallet) == 1
