"""
The ledger the singleton runs on.

A ``Chain`` owns the journaled state and executes transactions as trees of
frames. Each frame gets a ``CallContext`` carrying its identity (address,
sender, value), its gas meter and the handful of environment reads a
program may perform. A frame that raises is rolled back to the snapshot
taken when it was entered; its caller decides whether that failure is
fatal.

Programs are Python classes deriving from ``Program``. Subclasses that set
``CODE_NAME`` are registered so that init code naming them can be deployed,
and methods decorated with ``@external`` become callable through raw
calldata, dispatched by their 4-byte selector.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, NamedTuple, Optional, Tuple, Type

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from .exceptions import CallOutOfGas, InsufficientBalance, OutOfGas, Revert
from .gas import (
    DEFAULT_TX_GAS_LIMIT, G_CALL, G_CALL_VALUE, G_CODE_DEPOSIT_BYTE, G_CREATE,
    G_LOG, G_LOG_BYTE, G_SLOAD, G_SSTORE_RESET, G_SSTORE_SET, G_TX_BASE,
    GasMeter, keccak_gas,
)
from .models import Event, TxReceipt
from .state import StateDB
from .utils import (
    ZERO_ADDRESS, calldata_cost, get_create2_address, get_create_address,
    keccak, selector, to_address,
)

logger = logging.getLogger(__name__)

DEFAULT_COINBASE = "0x000000000000000000000000000000000000c0De"

_PROGRAM_TYPES: Dict[bytes, Type["Program"]] = {}


class CallResult(NamedTuple):
    """Result of a low-level call."""
    success: bool
    return_data: bytes


class TraceEntry(NamedTuple):
    """One observable action of a frame, recorded when tracing."""
    depth: int
    address: str
    kind: str
    detail: Any = None


@dataclass
class CallOutcome:
    """Result of an off-ledger call."""
    result: Any
    gas_used: int
    trace: List[TraceEntry] = field(default_factory=list)


def external(signature: str, returns: Tuple[str, ...] = ()):
    """
    Expose a program method to raw calldata.

    Args:
        signature: Canonical signature, e.g. ``"exec(address,bytes)"``
        returns: ABI types of the return value(s)
    """
    def decorator(fn):
        fn._abi_signature = signature
        fn._abi_returns = tuple(returns)
        return fn
    return decorator


def _arg_types(signature: str) -> List[str]:
    """Split the argument list of a signature on top-level commas."""
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    types, depth, current = [], 0, ""
    for char in inner:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    if current:
        types.append(current)
    return types


def encode_call(signature: str, *args) -> bytes:
    """Calldata invoking ``signature`` with ``args``, as dispatched by ``Program.call``."""
    types = _arg_types(signature)
    return selector(signature) + (encode(types, list(args)) if types else b"")


def code_tag(code_name: str) -> bytes:
    return keccak(code_name)[:4]


def resolve_init_code(init_code: bytes) -> Tuple[Type["Program"], tuple]:
    """
    Find the program class and constructor arguments named by init code.

    Raises:
        ValueError: If no registered program matches or the arguments don't decode
    """
    program_cls = _PROGRAM_TYPES.get(bytes(init_code[:4]))
    if program_cls is None:
        raise ValueError("init code names no known program")
    try:
        args = decode(list(program_cls.CONSTRUCTOR_TYPES), bytes(init_code[4:]))
    except DecodingError as e:
        raise ValueError(f"malformed constructor arguments: {e}")
    return program_cls, tuple(args)


class Program:
    """Base class for code deployed on the chain."""
    CODE_NAME: ClassVar[Optional[str]] = None
    CONSTRUCTOR_TYPES: ClassVar[Tuple[str, ...]] = ()
    _externals: ClassVar[Dict[bytes, Tuple[Callable, List[str], Tuple[str, ...]]]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        externals = {}
        for base in reversed(cls.__mro__):
            for attr in vars(base).values():
                signature = getattr(attr, "_abi_signature", None)
                if signature:
                    externals[selector(signature)] = (attr, _arg_types(signature), attr._abi_returns)
        cls._externals = externals
        if cls.__dict__.get("CODE_NAME"):
            _PROGRAM_TYPES[code_tag(cls.CODE_NAME)] = cls

    def __init__(self, address: str):
        self.address = address

    @classmethod
    def init_code(cls, *args) -> bytes:
        """Deployment payload for this program with the given constructor args."""
        if not cls.CODE_NAME:
            raise TypeError(f"{cls.__name__} is not deployable")
        return code_tag(cls.CODE_NAME) + encode(list(cls.CONSTRUCTOR_TYPES), list(args))

    def constructor(self, ctx: "CallContext", *args) -> None:
        """Runs once, in its own frame, when the program is deployed."""
        pass

    def receive(self, ctx: "CallContext") -> None:
        """Called for empty calldata. Accepts plain value by default."""
        pass

    def call(self, ctx: "CallContext", data: bytes) -> bytes:
        """Dispatch raw calldata to an ``@external`` method."""
        if not data:
            self.receive(ctx)
            return b""
        entry = self._externals.get(bytes(data[:4]))
        if entry is None:
            raise Revert("unrecognized function selector")
        fn, arg_types, return_types = entry
        try:
            args = decode(arg_types, bytes(data[4:])) if arg_types else ()
        except DecodingError:
            raise Revert("malformed calldata")
        result = fn(self, ctx, *args)
        if not return_types:
            return b""
        if len(return_types) == 1:
            result = (result,)
        return encode(list(return_types), list(result))

    def __repr__(self):
        return f"{type(self).__name__}({self.address})"


class CallContext:
    """Everything a frame can see and do."""

    def __init__(
        self,
        chain: "Chain",
        address: str,
        sender: str,
        value: int,
        gas: GasMeter,
        origin: str,
        depth: int = 0,
        tracer: Optional[List[TraceEntry]] = None
    ):
        self.chain = chain
        self.address = address
        self.sender = sender
        self.value = value
        self.gas = gas
        self._origin = origin
        self.depth = depth
        self.tracer = tracer

    @property
    def state(self) -> StateDB:
        return self.chain.state

    def _trace(self, kind: str, detail: Any = None) -> None:
        if self.tracer is not None:
            self.tracer.append(TraceEntry(self.depth, self.address, kind, detail))

    # ----------------------------------------------------------------- metering

    def use_gas(self, amount: int, reason: str = "") -> None:
        self.gas.consume(amount, reason)

    def gas_left(self) -> int:
        self._trace("gas_left")
        return self.gas.remaining

    # -------------------------------------------------------------- environment

    @property
    def block_number(self) -> int:
        self._trace("block_number")
        return self.chain.block_number

    @property
    def gas_price(self) -> int:
        self._trace("gas_price")
        return self.chain.tx_gas_price

    @property
    def base_fee(self) -> int:
        self._trace("base_fee")
        return self.chain.base_fee

    @property
    def coinbase(self) -> str:
        self._trace("coinbase")
        return self.chain.coinbase

    @property
    def origin(self) -> str:
        self._trace("origin")
        return self._origin

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def balance_of(self, address: Optional[str] = None) -> int:
        address = address or self.address
        self._trace("balance", address)
        return self.state.get_balance(address)

    def code_exists(self, address: str) -> bool:
        return self.state.get_code(address) is not None

    # ------------------------------------------------------------------ storage

    def sload(self, key: Any, default: Any = 0) -> Any:
        self.use_gas(G_SLOAD, "sload")
        self._trace("sload", (self.address, key))
        return self.state.get_storage(self.address, key, default)

    def sstore(self, key: Any, value: Any) -> None:
        fresh = not self.state.get_storage(self.address, key, None)
        self.use_gas(G_SSTORE_SET if fresh else G_SSTORE_RESET, "sstore")
        self._trace("sstore", (self.address, key))
        self.state.set_storage(self.address, key, value)

    # -------------------------------------------------------------------- value

    def transfer(self, to: str, amount: int) -> None:
        """Send value, reverting this frame if the balance is short."""
        self.use_gas(G_CALL_VALUE, "transfer")
        self.state.transfer(self.address, to, amount)

    def send_value(self, to: str, amount: int) -> bool:
        """Send value through a low-level call; report failure instead of raising."""
        return self.call(to, b"", value=amount).success

    # -------------------------------------------------------------------- calls

    def invoke(self, to: str, fn: Callable[["CallContext", Program], Any],
               gas: Optional[int] = None, value: int = 0) -> Any:
        """
        High-level call: run ``fn(child_ctx, program)`` in a new frame at ``to``.

        A revert in the child bubbles up unchanged (after the child's state is
        rolled back); running out of gas in the child surfaces as CallOutOfGas.

        Raises:
            Revert: If ``to`` holds no program or the child frame reverted
        """
        self.use_gas(G_CALL + (G_CALL_VALUE if value else 0), "call")
        self._trace("call", to)
        program = self.state.get_code(to)
        if program is None:
            raise Revert(f"call to non-program address {to}")
        return self.chain._run_frame(
            to, lambda child: fn(child, program), sender=self.address, value=value,
            gas_limit=self.gas.child_limit(gas), origin=self._origin,
            depth=self.depth + 1, tracer=self.tracer, parent_meter=self.gas
        )

    def call(self, to: str, data: bytes = b"", gas: Optional[int] = None, value: int = 0) -> CallResult:
        """Low-level call with raw calldata. Never raises for a failing callee."""
        if self.state.get_code(to) is None:
            self.use_gas(G_CALL + (G_CALL_VALUE if value else 0), "call")
            self._trace("call", to)
            snapshot = self.state.snapshot()
            try:
                self.state.transfer(self.address, to, value)
            except InsufficientBalance:
                self.state.revert(snapshot)
                return CallResult(False, b"")
            return CallResult(True, b"")
        try:
            output = self.invoke(to, lambda child, program: program.call(child, data), gas=gas, value=value)
        except Revert as e:
            return CallResult(False, e.data)
        return CallResult(True, output)

    def create2(self, init_code: bytes, salt: int) -> str:
        """
        Deploy ``init_code`` at its counterfactual address.

        Raises:
            Revert: If the address is occupied or the init code can't be deployed
        """
        init_code = bytes(init_code)
        self.use_gas(
            G_CREATE + G_CODE_DEPOSIT_BYTE * len(init_code) + keccak_gas(len(init_code)),
            "create2"
        )
        address = get_create2_address(self.address, salt, init_code)
        self._trace("create2", address)
        return self.chain._create(self, address, init_code)

    # ------------------------------------------------------------------- events

    def emit(self, event: Event) -> None:
        self.use_gas(G_LOG + G_LOG_BYTE * event.data_size(), "log")
        entry = {"event": event.name(), "address": self.address}
        entry.update(event.model_dump())
        self.state.add_log(entry)

    def require(self, condition: Any, reason: str) -> None:
        if not condition:
            raise Revert(reason)


class Chain:
    """
    A single in-process ledger.

    Args:
        chain_id: Chain id bound into request ids
        base_fee: Network base fee per gas, in wei
        block_number: Number of the block the next transaction lands in
        coinbase: Address credited with transaction fees
        logger: Optional logger instance
    """

    def __init__(
        self,
        chain_id: int = 1337,
        base_fee: int = 10**9,
        block_number: int = 1,
        coinbase: str = DEFAULT_COINBASE,
        logger: Optional[logging.Logger] = None
    ):
        self.state = StateDB()
        self.chain_id = chain_id
        self.base_fee = base_fee
        self.block_number = block_number
        self.coinbase = to_address(coinbase)
        # price of the transaction being executed
        self.tx_gas_price = base_fee
        self.logger = logger or logging.getLogger(__name__)

    # --------------------------------------------------------------- inspection

    def fund(self, address: str, amount: int) -> None:
        """Set the balance of ``address`` outside of any transaction."""
        self.state.set_balance(to_address(address), amount)
        self.state.commit()

    def get_balance(self, address: str) -> int:
        return self.state.get_balance(to_address(address))

    def get_code(self, address: str) -> Optional[Program]:
        return self.state.get_code(to_address(address))

    def mine(self, blocks: int = 1) -> int:
        self.block_number += blocks
        return self.block_number

    # ---------------------------------------------------------------- execution

    def _run_frame(
        self,
        address: str,
        body: Callable[[CallContext], Any],
        sender: str,
        value: int,
        gas_limit: int,
        origin: str,
        depth: int,
        tracer: Optional[List[TraceEntry]],
        parent_meter: GasMeter
    ) -> Any:
        meter = GasMeter(gas_limit)
        ctx = CallContext(self, address, sender, value, meter, origin, depth, tracer)
        snapshot = self.state.snapshot()
        try:
            if value:
                self.state.transfer(sender, address, value)
            return body(ctx)
        except OutOfGas:
            self.state.revert(snapshot)
            raise CallOutOfGas() from None
        except Exception:
            self.state.revert(snapshot)
            raise
        finally:
            parent_meter.consume(meter.used)

    def _create(self, parent: CallContext, address: str, init_code: bytes) -> str:
        if self.state.get_code(address) is not None:
            raise Revert(f"create failed: {address} already holds code")
        try:
            program_cls, args = resolve_init_code(init_code)
        except ValueError as e:
            raise Revert(f"create failed: {e}")
        program = program_cls(address)

        def construct(ctx: CallContext) -> None:
            self.state.set_code(address, program)
            program.constructor(ctx, *args)

        self._run_frame(
            address, construct, sender=parent.address, value=0,
            gas_limit=parent.gas.child_limit(), origin=parent._origin,
            depth=parent.depth + 1, tracer=parent.tracer, parent_meter=parent.gas
        )
        self.logger.debug(f"Deployed {program_cls.__name__} at {address}")
        return address

    def _require_program(self, to: str) -> Program:
        program = self.get_code(to)
        if program is None:
            raise ValueError(f"No program deployed at {to}")
        return program

    def _execute(
        self,
        sender: str,
        to: Optional[str],
        body: Callable[[CallContext], Any],
        value: int,
        gas_limit: int,
        gas_price: Optional[int],
        data: bytes
    ) -> Tuple[Any, TxReceipt]:
        sender = to_address(sender)
        if sender == ZERO_ADDRESS:
            raise ValueError("The zero address cannot send transactions")
        gas_price = self.base_fee if gas_price is None else gas_price
        intrinsic = G_TX_BASE + calldata_cost(data)
        if gas_limit < intrinsic:
            raise ValueError(f"Gas limit {gas_limit} below intrinsic gas {intrinsic}")
        if self.state.get_balance(sender) < gas_limit * gas_price + value:
            raise InsufficientBalance(f"{sender} cannot cover gas limit and value")

        self.tx_gas_price = gas_price
        snapshot = self.state.snapshot()
        root = GasMeter(gas_limit)
        try:
            root.consume(intrinsic)
            result = self._run_frame(
                to or sender, body, sender=sender, value=value if to else 0,
                gas_limit=root.remaining, origin=sender, depth=0, tracer=None,
                parent_meter=root
            )
            self.state.transfer(sender, self.coinbase, root.used * gas_price)
            nonce = self.state.increment_nonce(sender)
        except Exception:
            self.state.revert(snapshot)
            raise
        self.state.commit()
        logs = self.state.drain_logs()

        tx_hash = keccak(encode(["address", "uint256", "uint256"], [sender, nonce, self.chain_id]))
        receipt = TxReceipt(
            transactionHash="0x" + tx_hash.hex(),
            blockNumber=self.block_number,
            status=1,
            gasUsed=root.used,
            **{"from": sender},
            to=to,
            logs=logs
        )
        self.block_number += 1
        return result, receipt

    def transact(
        self,
        sender: str,
        to: str,
        fn: Callable[[CallContext, Program], Any],
        value: int = 0,
        gas_limit: int = DEFAULT_TX_GAS_LIMIT,
        gas_price: Optional[int] = None,
        data: bytes = b""
    ) -> TxReceipt:
        """
        Execute ``fn(ctx, program)`` against the program at ``to`` as one
        atomic transaction.

        Args:
            sender: Account sending (and paying for) the transaction
            to: Program address
            fn: Body of the call
            value: Wei sent along with the call
            gas_limit: Gas limit of the transaction
            gas_price: Price per gas paid to the coinbase (defaults to base fee)
            data: Calldata the transaction carries, charged as intrinsic gas

        Returns:
            Receipt of the committed transaction

        Raises:
            Revert: If execution failed; nothing was committed
            ValueError: If the transaction is malformed
        """
        program = self._require_program(to)
        _, receipt = self._execute(
            sender, program.address, lambda ctx: fn(ctx, program),
            value, gas_limit, gas_price, data
        )
        return receipt

    def deploy(self, sender: str, init_code: bytes, gas_limit: int = DEFAULT_TX_GAS_LIMIT) -> Tuple[str, TxReceipt]:
        """
        Deploy a program with plain CREATE semantics.

        Returns:
            Tuple of (program address, receipt)
        """
        sender = to_address(sender)
        address = get_create_address(sender, self.state.get_nonce(sender))

        def create(ctx: CallContext) -> str:
            ctx.use_gas(G_CREATE + G_CODE_DEPOSIT_BYTE * len(init_code), "create")
            return self._create(ctx, address, init_code)

        _, receipt = self._execute(sender, None, create, 0, gas_limit, None, bytes(init_code))
        self.logger.info(f"Deployed program at {address} (gas used: {receipt.gas_used})")
        return address, receipt

    def call(
        self,
        sender: str,
        to: str,
        fn: Callable[[CallContext, Program], Any],
        value: int = 0,
        gas_limit: int = DEFAULT_TX_GAS_LIMIT,
        trace: bool = False
    ) -> CallOutcome:
        """
        Off-ledger call: execute like a transaction, then discard every change.

        Unlike ``transact`` this may be sent from the zero address, which is
        how simulation entry points tell off-ledger callers apart.
        """
        sender = to_address(sender)
        program = self._require_program(to)
        tracer: Optional[List[TraceEntry]] = [] if trace else None
        root = GasMeter(gas_limit)
        self.tx_gas_price = self.base_fee
        snapshot = self.state.snapshot()
        try:
            result = self._run_frame(
                program.address, lambda ctx: fn(ctx, program), sender=sender,
                value=value, gas_limit=root.remaining, origin=sender, depth=0,
                tracer=tracer, parent_meter=root
            )
        finally:
            self.state.revert(snapshot)
        return CallOutcome(result=result, gas_used=root.used, trace=tracer or [])
