"""
Pytest fixtures for the aa-singleton tests.
"""
import pytest
from eth_account import Account

import aa_singleton.samples  # noqa: F401  registers the sample programs
from aa_singleton._rate_limited_log import reset_rate_limits
from aa_singleton.config import NetworkConfig

from tests.test_helpers import (
    BENEFICIARY, OTHER_PRIV_KEY, TEST_PRIV_KEY, create_world, deploy_counter,
    deploy_wallet,
)


@pytest.fixture(autouse=True)
def _fresh_module_state():
    """Rate limits and the network cache are module-level; start every test clean."""
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    yield
    reset_rate_limits()


@pytest.fixture
def world():
    """(chain, client) with a singleton deployed under the default config"""
    return create_world()


@pytest.fixture
def chain(world):
    return world[0]


@pytest.fixture
def client(world):
    return world[1]


@pytest.fixture
def wallet_owner():
    """Create a deterministic wallet owner"""
    return Account.from_key(TEST_PRIV_KEY)


@pytest.fixture
def stranger():
    """A key that owns nothing"""
    return Account.from_key(OTHER_PRIV_KEY)


@pytest.fixture
def wallet(chain, client, wallet_owner):
    """A deployed SimpleWallet holding 1 ETH"""
    return deploy_wallet(chain, client, wallet_owner.address)


@pytest.fixture
def counter(chain):
    return deploy_counter(chain)


@pytest.fixture
def beneficiary():
    return BENEFICIARY
