#!/usr/bin/env python3
"""
Simple example of using aa-singleton.
"""
import logging

from eth_account import Account

from aa_singleton import Chain, SingletonClient, fill_and_sign
from aa_singleton.chain import encode_call
from aa_singleton.samples import SimpleWallet, TestCounter


def main():
    """
    Demonstrate basic usage of the SingletonClient.

    This example shows how to:
    1. Deploy a singleton on a fresh in-memory chain
    2. Create a wallet counterfactually, in the same batch as its first call
    3. Submit a second operation and read the settlement events
    """
    logging.basicConfig(level=logging.INFO)

    chain = Chain()
    bundler = Account.create()
    owner = Account.create()
    beneficiary = Account.create().address
    chain.fund(bundler.address, 10**19)

    client = SingletonClient.deploy(chain, bundler.address)
    counter, _ = chain.deploy(bundler.address, TestCounter.init_code())
    call_data = encode_call(
        "execFromSingleton(bytes)",
        encode_call("exec(address,bytes)", counter, encode_call("count()"))
    )

    # The wallet doesn't exist yet; fund its future address so it can pay
    init_code = SimpleWallet.init_code(client.address, owner.address)
    wallet = client.get_account_address(init_code, 0)
    chain.fund(wallet, 10**17)
    print(f"Wallet address: {wallet}")

    try:
        first = fill_and_sign(chain, client.address, owner, init_code=init_code,
                              call_data=call_data, call_gas=100_000)
        receipt = client.handle_ops([first], beneficiary)
        print(f"Wallet deployed in tx {receipt.tx_hash} (block {receipt.block_number})")

        second = fill_and_sign(chain, client.address, owner, sender=wallet,
                               call_data=call_data, call_gas=100_000)
        receipt = client.handle_ops([second], beneficiary)
        for event in receipt.events("UserOperationEvent"):
            print(f"Operation {event.nonce}: success={event.success}, cost={event.actual_gas_cost} wei")

        count = chain.call(bundler.address, counter, lambda ctx, c: c.counters(ctx, wallet)).result
        print(f"Counter for wallet: {count}")
        print(f"Beneficiary earned: {chain.get_balance(beneficiary)} wei")

    except Exception as e:
        print(f"Error handling operations: {str(e)}")


if __name__ == "__main__":
    main()
