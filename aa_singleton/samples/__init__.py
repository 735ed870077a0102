"""
Sample programs that work with the singleton.
"""
from .counter import TestCounter
from .paymaster import ExecWhitelistPaymaster
from .wallet import SimpleWallet

__all__ = ["ExecWhitelistPaymaster", "SimpleWallet", "TestCounter"]
