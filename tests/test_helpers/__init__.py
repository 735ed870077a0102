"""
Test helpers for the aa-singleton test suite.
"""
from .builders import (
    BENEFICIARY, DEPLOYER, DEPLOYER_FUNDS, ONE_ETHER, OTHER_PRIV_KEY, TEST_PRIV_KEY,
    allow_call, count_call_data, counter_value, create_world, deploy_counter,
    deploy_paymaster, deploy_program, deploy_wallet, exec_count_call_data,
    wallet_nonce,
)
from .programs import (
    BlockReadingWallet, GasPriceReadingWallet, GenerousWallet, NosyWallet, Recorder,
    RevertingPaymaster,
)

__all__ = [
    "BENEFICIARY",
    "BlockReadingWallet",
    "DEPLOYER",
    "DEPLOYER_FUNDS",
    "GasPriceReadingWallet",
    "GenerousWallet",
    "NosyWallet",
    "ONE_ETHER",
    "OTHER_PRIV_KEY",
    "Recorder",
    "RevertingPaymaster",
    "TEST_PRIV_KEY",
    "allow_call",
    "count_call_data",
    "counter_value",
    "create_world",
    "deploy_counter",
    "deploy_paymaster",
    "deploy_program",
    "deploy_wallet",
    "exec_count_call_data",
    "wallet_nonce",
]
