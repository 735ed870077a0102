"""
Capabilities the singleton expects from the programs it talks to.

Any program providing these methods can act as an account or a paymaster;
no base class is required.
"""
from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from .chain import CallContext
    from .models import ExecutionOutcome, UserOperation


@runtime_checkable
class AccountProgram(Protocol):
    """An account that authorizes operations and runs their calls."""

    def validate_user_op(
        self,
        ctx: "CallContext",
        op: "UserOperation",
        request_id: bytes,
        required_prefund: int
    ) -> None:
        """
        Validate ``op`` and transfer ``required_prefund`` wei to ``ctx.sender``
        (the singleton). Revert to reject the operation.
        """
        ...

    def call(self, ctx: "CallContext", data: bytes) -> bytes:
        """Run arbitrary calldata."""
        ...


@runtime_checkable
class PaymasterProgram(Protocol):
    """A sponsor paying fees out of its stake."""

    def validate_paymaster_user_op(
        self,
        ctx: "CallContext",
        op: "UserOperation",
        request_id: bytes,
        max_cost: int
    ) -> bytes:
        """Agree to pay for ``op``; the returned context is handed to ``post_op``."""
        ...

    def post_op(
        self,
        ctx: "CallContext",
        mode: "ExecutionOutcome",
        context: bytes,
        actual_gas_cost: int
    ) -> None:
        """Settle with the sponsor once the actual cost is known."""
        ...
