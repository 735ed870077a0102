"""
Gas metering for frames executed on the ledger.
"""
from typing import Optional

from .exceptions import OutOfGas

# Cost schedule
G_TX_BASE = 21000
G_CALL = 700
G_CALL_VALUE = 9000
G_SLOAD = 800
G_SSTORE_SET = 20000
G_SSTORE_RESET = 5000
G_CREATE = 32000
G_CODE_DEPOSIT_BYTE = 200
G_LOG = 375
G_LOG_BYTE = 8
G_KECCAK = 30
G_KECCAK_WORD = 6
G_ECRECOVER = 3000

DEFAULT_TX_GAS_LIMIT = 10_000_000


class GasMeter:
    """Tracks gas consumed against a fixed limit."""

    def __init__(self, limit: int):
        if limit < 0:
            raise ValueError("gas limit must be non-negative")
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def consume(self, amount: int, reason: str = "") -> None:
        """
        Consume gas from the meter.

        Raises:
            OutOfGas: If ``amount`` exceeds the remaining gas. The meter is
                exhausted in that case, as a failing frame forfeits its budget.
        """
        if amount < 0:
            raise ValueError("cannot consume negative gas")
        if amount > self.remaining:
            self.used = self.limit
            raise OutOfGas(f"out of gas{': ' + reason if reason else ''}")
        self.used += amount

    def child_limit(self, requested: Optional[int] = None) -> int:
        """
        Budget for a child frame: all but 1/64th of what is left, capped by
        ``requested``.
        """
        available = self.remaining - self.remaining // 64
        if requested is None:
            return available
        return min(requested, available)

    def __repr__(self):
        return f"GasMeter(used={self.used}, limit={self.limit})"


def keccak_gas(length: int) -> int:
    return G_KECCAK + G_KECCAK_WORD * ((length + 31) // 32)


def effective_gas_price(max_fee_per_gas: int, max_priority_fee_per_gas: int, base_fee: int) -> int:
    """
    Unit price actually charged for an operation.

    Equal fee caps select legacy pricing (the cap itself); otherwise the
    priority fee rides on top of the base fee, never exceeding the cap.
    """
    if max_fee_per_gas == max_priority_fee_per_gas:
        return max_fee_per_gas
    return min(max_fee_per_gas, max_priority_fee_per_gas + base_fee)
