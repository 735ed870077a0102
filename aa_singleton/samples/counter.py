"""
Test target: per-caller counters plus a knob to burn gas.
"""
from eth_abi import encode

from ..chain import CallContext, Program, external
from ..gas import keccak_gas
from ..utils import keccak, to_address


class TestCounter(Program):
    CODE_NAME = "TestCounter"
    __test__ = False

    @external("count()")
    def count(self, ctx: CallContext) -> None:
        key = ("counters", ctx.sender)
        ctx.sstore(key, ctx.sload(key) + 1)

    @external("counters(address)", returns=("uint256",))
    def counters(self, ctx: CallContext, address: str) -> int:
        return ctx.sload(("counters", to_address(address)))

    @external("gasWaster(uint256,string)")
    def gas_waster(self, ctx: CallContext, repeat: int, junk: str) -> None:
        """Write ``repeat - 1`` fresh slots, then store ``junk``."""
        offset = 0
        for i in range(1, repeat):
            ctx.use_gas(keccak_gas(64), "keccak")
            offset = int.from_bytes(keccak(encode(["uint256", "uint256"], [i, offset])), "big")
            ctx.sstore(("xxx", offset), i)
        ctx.use_gas(keccak_gas(len(junk)), "keccak")
        ctx.sstore("junk", junk)
