"""
Journaled world state.

All mutations go through ``StateDB`` so that any nested scope can be rolled
back with ``revert(snapshot_id)``. The journal is a list of undo closures;
a snapshot is simply the journal length at the time it was taken.
"""
import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, TYPE_CHECKING

from .exceptions import InsufficientBalance

if TYPE_CHECKING:
    from .chain import Program

logger = logging.getLogger(__name__)

_MISSING = object()


class StateDB:
    """Balances, deployed programs, per-program storage and the pending log."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._code: Dict[str, "Program"] = {}
        self._storage: Dict[str, Dict[Hashable, Any]] = {}
        self._nonces: Dict[str, int] = {}
        self._logs: List[Dict[str, Any]] = []
        self._journal: List[Callable[[], None]] = []

    # ----------------------------------------------------------------- journal

    def snapshot(self) -> int:
        return len(self._journal)

    def revert(self, snapshot_id: int) -> None:
        """Undo every mutation made after ``snapshot_id`` was taken."""
        if snapshot_id > len(self._journal):
            raise ValueError(f"Unknown snapshot {snapshot_id}")
        while len(self._journal) > snapshot_id:
            undo = self._journal.pop()
            undo()

    def commit(self) -> None:
        """Make everything journaled so far permanent."""
        self._journal.clear()

    def _set(self, mapping: Dict, key: Hashable, value: Any) -> None:
        previous = mapping.get(key, _MISSING)
        if previous is _MISSING:
            self._journal.append(lambda: mapping.pop(key, None))
        else:
            self._journal.append(lambda: mapping.__setitem__(key, previous))
        mapping[key] = value

    # ---------------------------------------------------------------- balances

    def get_balance(self, address: str) -> int:
        return self._balances.get(address, 0)

    def set_balance(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("balance cannot be negative")
        self._set(self._balances, address, amount)

    def transfer(self, src: str, dst: str, amount: int) -> None:
        """
        Move ``amount`` wei from ``src`` to ``dst``.

        Raises:
            InsufficientBalance: If ``src`` holds less than ``amount``
        """
        if amount < 0:
            raise ValueError("transfer amount cannot be negative")
        if amount == 0:
            return
        balance = self.get_balance(src)
        if balance < amount:
            raise InsufficientBalance(f"insufficient balance: {src} has {balance}, needs {amount}")
        self.set_balance(src, balance - amount)
        self.set_balance(dst, self.get_balance(dst) + amount)

    # -------------------------------------------------------------------- code

    def get_code(self, address: str) -> Optional["Program"]:
        return self._code.get(address)

    def set_code(self, address: str, program: "Program") -> None:
        self._set(self._code, address, program)

    # ----------------------------------------------------------------- storage

    def get_storage(self, address: str, key: Hashable, default: Any = 0) -> Any:
        return self._storage.get(address, {}).get(key, default)

    def has_storage(self, address: str, key: Hashable) -> bool:
        return key in self._storage.get(address, {})

    def set_storage(self, address: str, key: Hashable, value: Any) -> None:
        if address not in self._storage:
            self._set(self._storage, address, {})
        self._set(self._storage[address], key, value)

    # ------------------------------------------------------------------ nonces

    def get_nonce(self, address: str) -> int:
        return self._nonces.get(address, 0)

    def increment_nonce(self, address: str) -> int:
        nonce = self.get_nonce(address)
        self._set(self._nonces, address, nonce + 1)
        return nonce

    # -------------------------------------------------------------------- logs

    def add_log(self, entry: Dict[str, Any]) -> None:
        self._logs.append(entry)
        self._journal.append(self._logs.pop)

    def drain_logs(self) -> List[Dict[str, Any]]:
        """Return and clear the logs collected for the current transaction."""
        logs, self._logs = self._logs, []
        return logs
