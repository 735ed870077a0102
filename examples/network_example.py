#!/usr/bin/env python3
"""
Example of a sponsored operation on a network preset.
"""
import os

from eth_account import Account

from aa_singleton import NetworkConfig, SingletonClient, fill_and_sign
from aa_singleton.chain import encode_call
from aa_singleton.samples import ExecWhitelistPaymaster, SimpleWallet, TestCounter
from aa_singleton.utils import selector


def main():
    """
    Demonstrate a paymaster-sponsored operation.

    This example shows how to:
    1. Build a chain and singleton from a network preset
    2. Stake a whitelisting paymaster
    3. Submit an operation from an unfunded wallet, paid for by the paymaster
    """
    network = os.environ.get("AA_NETWORK", "local-locked")

    print("Available networks:")
    for network_name in NetworkConfig.load_networks().keys():
        print(f"  - {network_name}")
    print()

    chain = NetworkConfig.create_chain(network)
    config = NetworkConfig.get_singleton_config(network)
    bundler = Account.create()
    owner = Account.create()
    chain.fund(bundler.address, 10**20)

    client = SingletonClient.deploy(chain, bundler.address, config=config)
    print(f"Singleton deployed at {client.address} on chain {chain.chain_id}")

    counter, _ = chain.deploy(bundler.address, TestCounter.init_code())
    paymaster, _ = chain.deploy(
        bundler.address, ExecWhitelistPaymaster.init_code(client.address, bundler.address, 10**18)
    )
    chain.transact(bundler.address, paymaster, lambda ctx, pm: pm.allow(ctx, counter, selector("count()")))
    client.deposit(paymaster, config.paymaster_stake + 10**18, payer=bundler.address)
    print(f"Paymaster stake: {client.get_stake(paymaster).amount} wei")

    wallet, _ = chain.deploy(bundler.address, SimpleWallet.init_code(client.address, owner.address))
    op = fill_and_sign(
        chain, client.address, owner, sender=wallet, paymaster=paymaster,
        call_data=encode_call("exec(address,bytes)", counter, encode_call("count()")),
        call_gas=100_000
    )

    try:
        receipt = client.handle_ops([op], bundler.address)
        [event] = receipt.events("UserOperationEvent")
        print(f"Sponsored operation: success={event.success}, cost={event.actual_gas_cost} wei")
        print(f"Wallet balance is still {chain.get_balance(wallet)} wei")
        print(f"Paymaster stake now {client.get_stake(paymaster).amount} wei")
    except Exception as e:
        print(f"Error handling operations: {str(e)}")


if __name__ == "__main__":
    main()
