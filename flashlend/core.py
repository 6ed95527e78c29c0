"""
Core types and pure helpers for the flash-lending system.

This module provides the foundational data structures shared by the execution
host, the asset contracts and the lender:
1. Protocols: ChainView for the host interface contracts are allowed to use
2. Immutable records: CallContext, CallFrame, CallResult, CallbackDescriptor,
   LogEntry, Receipt
3. Exceptions: FlashLendError and the fault taxonomy
4. Word codec: 32-byte encoding for integers and booleans returned by assets
5. Contract: base class for code deployed on a host

Nothing in this module mutates host state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any, Dict, FrozenSet, List, Mapping, Optional, Protocol, Tuple,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Amounts are unsigned 256-bit integers.
UINT256_BITS = 256
MAX_UINT256 = 2 ** UINT256_BITS - 1

# Width of one encoded return value.
WORD_SIZE = 32

# Deepest nesting of call frames the host allows. Each host frame costs a few
# interpreter frames, so this stays inside Python's default recursion limit.
DEFAULT_MAX_CALL_DEPTH = 128

# Selector the reference borrowers expose for the lender callback.
FLASH_CALLBACK_SELECTOR = "onFlashLoan"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identifier of an account or a deployed contract.
Address = str

# Name of a function exposed by a contract.
Selector = str

# Per-contract key/value store managed by the host.
Storage = Dict[Any, Any]


# ============================================================================
# WORD CODEC
# ============================================================================

def encode_uint(value: int) -> bytes:
    """Encode an unsigned integer as one big-endian 32-byte word."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"uint must be int, got {type(value)}")
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint out of range: {value}")
    return value.to_bytes(WORD_SIZE, "big")


def decode_uint(data: bytes) -> int:
    """
    Decode one 32-byte word into an unsigned integer.

    Raises:
        ValueError: If data is not exactly one word
    """
    if not isinstance(data, (bytes, bytearray)) or len(data) != WORD_SIZE:
        raise ValueError(f"expected a {WORD_SIZE}-byte word, got {data!r}")
    return int.from_bytes(data, "big")


def encode_bool(flag: bool) -> bytes:
    return encode_uint(1 if flag else 0)


TRUE_WORD = encode_bool(True)
FALSE_WORD = encode_bool(False)


def is_uint(value: Any) -> bool:
    """Return True if value is an int in the unsigned 256-bit range."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= MAX_UINT256
    )


# ============================================================================
# ENUMS
# ============================================================================

class TxStatus(Enum):
    """
    Outcome of a top-level transaction.

    SUCCESS: Every frame committed and the receipt carries the return value.
    REVERTED: The entry call failed; all of its effects were discarded.
    """
    SUCCESS = "success"
    REVERTED = "reverted"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class FlashLendError(Exception):
    """
    Base exception for every fault that aborts a call frame.

    Raising a FlashLendError inside a contract reverts the current frame:
    the host restores the storage and event log captured when the frame began.
    """
    pass


class Revert(FlashLendError):
    """Generic revert with a free-form reason."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class UnsupportedAsset(FlashLendError):
    """Raised when an asset other than the managed asset is named."""

    def __init__(self, asset: Address, expected: Address):
        self.asset = asset
        self.expected = expected
        super().__init__(f"Unsupported asset {asset!r} (lender manages {expected!r})")


class NotOwner(FlashLendError):
    """Raised when a caller other than the owner invokes an owner-only operation."""

    def __init__(self, caller: Address, owner: Address):
        self.caller = caller
        self.owner = owner
        super().__init__(f"{caller!r} is not the owner ({owner!r})")


class NotAContract(FlashLendError):
    """Raised when an external call targets an address with no deployed code."""

    def __init__(self, address: Address):
        self.address = address
        super().__init__(f"No contract code at {address!r}")


class AssetCallFailed(FlashLendError):
    """Raised when a read call on the asset fails or returns malformed data."""

    def __init__(self, asset: Address, selector: Selector, cause: Optional[BaseException] = None):
        self.asset = asset
        self.selector = selector
        self.cause = cause
        super().__init__(f"{asset}.{selector} failed: {cause}")


class TransferFailed(FlashLendError):
    """Raised when an asset transfer neither succeeded silently nor returned true."""

    def __init__(
        self,
        asset: Address,
        to: Address,
        amount: int,
        cause: Optional[BaseException] = None,
    ):
        self.asset = asset
        self.to = to
        self.amount = amount
        self.cause = cause
        super().__init__(f"Transfer of {amount} {asset} to {to} failed: {cause}")


class CallbackFailed(FlashLendError):
    """Raised when the borrower callback itself fails."""

    def __init__(self, target: Address, selector: Selector, cause: Optional[BaseException] = None):
        self.target = target
        self.selector = selector
        self.cause = cause
        super().__init__(f"Callback {target}.{selector} failed: {cause}")


class InsufficientRepayment(FlashLendError):
    """Raised when the post-callback balance is below pre-loan reserves plus fee."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Repayment short: expected balance >= {expected}, found {actual}")

    @property
    def shortfall(self) -> int:
        return self.expected - self.actual


class InvalidArgument(FlashLendError):
    """Raised when a decoded argument is out of its domain (e.g. not a uint256)."""
    pass


class UnknownSelector(FlashLendError):
    """Raised when a contract is called with a selector it does not expose."""

    def __init__(self, target: Address, selector: Selector):
        self.target = target
        self.selector = selector
        super().__init__(f"{target} has no function {selector!r}")


class CallDepthExceeded(FlashLendError):
    """Raised when nested calls exceed the host's maximum call depth."""

    def __init__(self, depth: int, limit: int, interpreter: bool = False):
        self.depth = depth
        self.limit = limit
        self.interpreter = interpreter
        if interpreter:
            super().__init__(f"Call depth {depth} exhausted the interpreter stack (limit {limit})")
        else:
            super().__init__(f"Call depth {depth} exceeds limit {limit}")


class InsufficientBalance(FlashLendError):
    """Raised by reference assets when a holder cannot cover a transfer."""

    def __init__(self, holder: Address, balance: int, amount: int):
        self.holder = holder
        self.balance = balance
        self.amount = amount
        super().__init__(f"{holder} holds {balance}, cannot move {amount}")


class InsufficientAllowance(FlashLendError):
    """Raised by reference assets when a spender's allowance is too small."""

    def __init__(self, holder: Address, spender: Address, allowance: int, amount: int):
        self.holder = holder
        self.spender = spender
        self.allowance = allowance
        self.amount = amount
        super().__init__(f"{spender} may spend {allowance} of {holder}, needs {amount}")


class NotMinter(FlashLendError):
    """Raised by reference assets when someone other than the minter mints."""

    def __init__(self, caller: Address, minter: Address):
        self.caller = caller
        self.minter = minter
        super().__init__(f"{caller!r} is not the minter ({minter!r})")


def require_uint(name: str, value: Any) -> int:
    """Validate a decoded amount argument, raising InvalidArgument if out of range."""
    if not is_uint(value):
        raise InvalidArgument(f"{name} must be a uint256, got {value!r}")
    return value


# ============================================================================
# CALL RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CallbackDescriptor:
    """
    Opaque capability naming a contract and the function to invoke on it.

    Attributes:
        target: Address of the contract receiving the call
        selector: Function exposed by that contract
    """
    target: Address
    selector: Selector = FLASH_CALLBACK_SELECTOR

    def __post_init__(self):
        if not self.target or not self.target.strip():
            raise ValueError("Callback target cannot be empty")
        if not self.selector or not self.selector.strip():
            raise ValueError("Callback selector cannot be empty")

    def __repr__(self) -> str:
        return f"Callback({self.target}.{self.selector})"


@dataclass(frozen=True, slots=True)
class CallContext:
    """
    What a contract function learns about the call that invoked it.

    Attributes:
        sender: Immediate caller (account or contract address)
        origin: Account that submitted the top-level transaction
        depth: Frame depth, 1 for the entry call
    """
    sender: Address
    origin: Address
    depth: int


@dataclass(frozen=True, slots=True)
class CallFrame:
    """One entry on the host call stack."""
    sender: Address
    target: Address
    selector: Selector
    depth: int


@dataclass(frozen=True, slots=True)
class CallResult:
    """
    Outcome of a low-level call.

    A failed call never raises in the caller; the fault that reverted the
    callee is carried in `error` so the caller can wrap it with context.

    Attributes:
        success: False if the callee reverted
        return_data: Raw value returned by the callee (b"" when it returned nothing)
        error: The fault that reverted the callee, if any
    """
    success: bool
    return_data: Any = b""
    error: Optional[FlashLendError] = None


def _freeze_fields(fields: Mapping[str, Any]) -> Tuple[Tuple[str, Any], ...]:
    """Convert keyword fields to a sorted tuple of pairs."""
    return tuple(sorted(fields.items()))


@dataclass(frozen=True, slots=True)
class LogEntry:
    """
    An event emitted by a contract.

    Attributes:
        emitter: Address of the emitting contract
        name: Event name (e.g. "Flash", "Transfer")
        _fields: Frozen (key, value) pairs; use `args` for a dict view
        depth: Call depth at which the event was emitted
    """
    emitter: Address
    name: str
    _fields: Tuple[Tuple[str, Any], ...] = ()
    depth: int = 0

    @property
    def args(self) -> Dict[str, Any]:
        return dict(self._fields)

    def __getitem__(self, key: str) -> Any:
        return self.args[key]

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._fields)
        return f"{self.name}@{self.emitter}({body})"


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Immutable record of a top-level transaction.

    Attributes:
        sequence_number: Monotonic position in the host's receipt list
        sender: Account that submitted the transaction
        target: Contract or account called
        selector: Function invoked
        status: SUCCESS or REVERTED
        return_value: Value returned by the entry call (None when reverted)
        error: Fault that reverted the transaction (None on success)
        logs: Events committed by the transaction
    """
    sequence_number: int
    sender: Address
    target: Address
    selector: Selector
    status: TxStatus
    return_value: Any = None
    error: Optional[FlashLendError] = None
    logs: Tuple[LogEntry, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == TxStatus.SUCCESS

    def raise_for_status(self) -> Receipt:
        """Re-raise the fault of a reverted transaction; return self otherwise."""
        if self.error is not None:
            raise self.error
        return self

    def events(self, name: Optional[str] = None) -> List[LogEntry]:
        return [log for log in self.logs if name is None or log.name == name]

    def __repr__(self) -> str:
        outcome = self.status.value if self.error is None else f"{self.status.value}: {self.error}"
        return (
            f"Receipt(#{self.sequence_number} {self.sender}→{self.target}.{self.selector}"
            f" {outcome}, {len(self.logs)} logs)"
        )


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ChainView(Protocol):
    """
    Host interface available to contract code.

    Contracts reach other contracts only through `call`, which gives them
    the EVM low-level call semantics: a failing callee is reported through
    the CallResult and never unwinds the caller by itself.
    """

    @property
    def call_depth(self) -> int:
        """Number of frames currently on the call stack."""
        ...

    def has_code(self, address: Address) -> bool:
        """Return True if a contract is deployed at address."""
        ...

    def storage_of(self, address: Address) -> Storage:
        """Return the live storage of the contract at address."""
        ...

    def store(self, address: Address, key: Any, value: Any) -> None:
        """Write one storage slot, recorded so the current frame can undo it."""
        ...

    def call(self, sender: Address, target: Address, selector: Selector, *args: Any) -> CallResult:
        """Invoke selector on target as sender, atomically."""
        ...

    def emit(self, emitter: Address, name: str, **fields: Any) -> None:
        """Append an event to the log of the current frame."""
        ...


# ============================================================================
# CONTRACT BASE
# ============================================================================

class Contract:
    """
    Base class for code deployed on a host.

    Subclasses publish their external interface in `selectors`, a mapping from
    selector to the name of the Python method implementing it. Every such
    method takes a CallContext followed by the decoded arguments.

    Mutable state must live in host storage (`sload`/`sstore`), never on the
    instance, so that the host can roll it back. Attributes set in __init__
    or on_deploy are immutable configuration.
    """

    selectors: Mapping[Selector, str] = {}

    def __init__(self):
        self.address: Optional[Address] = None
        self.chain: Optional[ChainView] = None

    def on_deploy(self, deployer: Optional[Address]) -> None:
        """Initialize storage. Called once by the host after the address is bound."""
        pass

    @property
    def exposed(self) -> FrozenSet[Selector]:
        return frozenset(self.selectors)

    def dispatch(self, ctx: CallContext, selector: Selector, args: Tuple[Any, ...]) -> Any:
        method_name = self.selectors.get(selector)
        if method_name is None:
            raise UnknownSelector(self.address, selector)
        return getattr(self, method_name)(ctx, *args)

    def sload(self, key: Any, default: Any = 0) -> Any:
        return self.chain.storage_of(self.address).get(key, default)

    def sstore(self, key: Any, value: Any) -> None:
        self.chain.store(self.address, key, value)

    def emit(self, name: str, **fields: Any) -> None:
        self.chain.emit(self.address, name, **fields)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"
