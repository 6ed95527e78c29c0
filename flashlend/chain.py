"""
chain.py - Atomic Synchronous Execution Host

The Chain class is the only place that mutates contract state. It stands in
for the execution environment a flash lender runs inside: accounts, deployed
contracts, per-contract storage, an event log, and synchronous external calls
that either commit or leave no trace.

Key responsibilities:
    - Implements the ChainView protocol handed to contract code
    - Runs every call frame atomically (journal mark on entry, undo on revert)
    - Keeps the call stack so nested and re-entrant frames can be inspected
    - Records every top-level transaction as a Receipt (audit trail)
"""

from __future__ import annotations
import copy
from typing import Any, Dict, List, Optional, Set, Tuple

from .core import (
    # Types
    Address, Selector, Storage,
    CallContext, CallFrame, CallResult, Contract, LogEntry, Receipt, TxStatus,
    # Constants
    DEFAULT_MAX_CALL_DEPTH,
    # Exceptions
    FlashLendError, CallDepthExceeded,
    # Helpers
    _freeze_fields,
)


# Position a frame can roll back to: (journal length, event log length).
_Snapshot = Tuple[int, int]

# One undoable storage write: (address, key, key existed, previous value).
_JournalEntry = Tuple[Address, Any, bool, Any]


class Chain:
    """
    In-process host with atomic, synchronous, re-entrant call frames.

    Implements the ChainView protocol, so contracts receive the chain itself
    and reach other contracts only through call().

    Design Principles:
        - Every frame is atomic: a FlashLendError raised anywhere inside a
          frame discards that frame's storage writes and events, and the
          caller sees a failed CallResult.
        - No interleaving: calls run to completion on a single stack, so
          the only form of concurrency is re-entrant nesting.
        - Always logs: every top-level transaction produces a Receipt.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own Chain instance.

    Example:
        chain = Chain("main")
        chain.register_account("alice")
        usd = chain.deploy(Token("USD", "US Dollar"), deployer="alice")
        chain.transact("alice", usd, "mint", "alice", 1_000)
    """

    def __init__(
        self,
        name: str = "main",
        verbose: bool = True,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ):
        """
        Create a chain.

        Args:
            name: Chain identifier, used in generated addresses
            verbose: Print deployments and transaction outcomes (default: True)
            max_call_depth: Deepest frame nesting allowed before calls revert
        """
        if max_call_depth < 1:
            raise ValueError(f"max_call_depth must be >= 1, got {max_call_depth}")
        self.name = name
        self.verbose = verbose
        self.max_call_depth = max_call_depth
        self.accounts: Set[Address] = set()
        self.contracts: Dict[Address, Contract] = {}
        self.log: List[LogEntry] = []
        self.receipts: List[Receipt] = []
        self._storage: Dict[Address, Storage] = {}
        self._call_stack: List[CallFrame] = []
        self._journal: List[_JournalEntry] = []
        self._next_sequence: int = 0
        self._next_nonce: int = 0

    # ========================================================================
    # ChainView PROTOCOL IMPLEMENTATION
    # ========================================================================

    @property
    def call_depth(self) -> int:
        """Number of frames currently executing."""
        return len(self._call_stack)

    @property
    def call_stack(self) -> Tuple[CallFrame, ...]:
        return tuple(self._call_stack)

    def has_code(self, address: Address) -> bool:
        return address in self.contracts

    def storage_of(self, address: Address) -> Storage:
        """
        Return the live storage dictionary of a contract.

        Raises:
            KeyError: If no contract is deployed at address
        """
        if address not in self._storage:
            raise KeyError(f"No contract deployed at {address}")
        return self._storage[address]

    def store(self, address: Address, key: Any, value: Any) -> None:
        """
        Write one storage slot.

        Writes made inside a frame are journaled so a revert can undo them;
        writes outside any frame (deployment) are final.

        Raises:
            KeyError: If no contract is deployed at address
        """
        storage = self.storage_of(address)
        if self._call_stack:
            self._journal.append((address, key, key in storage, storage.get(key)))
        storage[key] = value

    def emit(self, emitter: Address, name: str, **fields: Any) -> None:
        self.log.append(LogEntry(
            emitter=emitter,
            name=name,
            _fields=_freeze_fields(fields),
            depth=len(self._call_stack),
        ))

    # ========================================================================
    # QUERIES
    # ========================================================================

    def is_registered(self, address: Address) -> bool:
        """True for both externally owned accounts and contracts."""
        return address in self.accounts or address in self.contracts

    def get_contract(self, address: Address) -> Contract:
        if address not in self.contracts:
            raise KeyError(f"No contract deployed at {address}")
        return self.contracts[address]

    def events(
        self,
        name: Optional[str] = None,
        emitter: Optional[Address] = None,
    ) -> List[LogEntry]:
        """Return committed events, optionally filtered by name and emitter."""
        return [
            entry for entry in self.log
            if (name is None or entry.name == name)
            and (emitter is None or entry.emitter == emitter)
        ]

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_account(self, address: Address) -> Address:
        """
        Register an externally owned account (an address without code).

        Raises:
            ValueError: If the address is empty or already in use
        """
        if not address or not address.strip():
            raise ValueError("Account address cannot be empty")
        if self.is_registered(address):
            raise ValueError(f"Address {address} already registered")
        self.accounts.add(address)
        return address

    def _generate_address(self, contract: Contract) -> Address:
        """
        Generate a fresh contract address.

        Format: {chain_name}:{ContractType}:{nonce}
        """
        while True:
            address = f"{self.name}:{type(contract).__name__}:{self._next_nonce}"
            self._next_nonce += 1
            if not self.is_registered(address):
                return address

    def deploy(
        self,
        contract: Contract,
        address: Optional[Address] = None,
        deployer: Optional[Address] = None,
    ) -> Address:
        """
        Bind a contract to an address and initialize its storage.

        Args:
            contract: Undeployed contract instance
            address: Explicit address (default: generated)
            deployer: Account credited as the deployer (passed to on_deploy)

        Returns:
            The contract's address

        Raises:
            ValueError: If the contract is already deployed or the address is taken
        """
        if contract.address is not None:
            raise ValueError(f"{contract!r} is already deployed")
        if address is None:
            address = self._generate_address(contract)
        elif self.is_registered(address):
            raise ValueError(f"Address {address} already registered")

        contract.address = address
        contract.chain = self
        self.contracts[address] = contract
        self._storage[address] = {}
        try:
            contract.on_deploy(deployer)
        except Exception:
            del self.contracts[address]
            del self._storage[address]
            contract.address = None
            contract.chain = None
            raise

        if self.verbose:
            print(f"📝 Deployed: {type(contract).__name__} at {address}")
        return address

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def _snapshot(self) -> _Snapshot:
        return len(self._journal), len(self.log)

    def _restore(self, snapshot: _Snapshot) -> None:
        journal_length, log_length = snapshot
        # Undo newest first; popping keeps a partial undo resumable by an outer frame.
        while len(self._journal) > journal_length:
            address, key, existed, previous = self._journal.pop()
            storage = self._storage[address]
            if existed:
                storage[key] = previous
            else:
                del storage[key]
        del self.log[log_length:]

    def call(self, sender: Address, target: Address, selector: Selector, *args: Any) -> CallResult:
        """
        Invoke a function on a contract as a new atomic frame.

        A call to an address without code succeeds and returns no data.
        If the callee raises a FlashLendError, every storage write and event
        of the frame is discarded and a failed CallResult carrying the fault is
        returned. Running out of interpreter stack is reported the same way,
        as CallDepthExceeded. Any other exception also restores the frame and
        then propagates, since it signals a defect rather than a revert.

        Args:
            sender: Immediate caller, visible to the callee as ctx.sender
            target: Address being called
            selector: Function to invoke
            *args: Decoded arguments

        Returns:
            CallResult with the callee's return value or its fault
        """
        contract = self.contracts.get(target)
        if contract is None:
            return CallResult(success=True, return_data=b"")

        depth = len(self._call_stack) + 1
        origin = self._call_stack[0].sender if self._call_stack else sender
        snapshot = self._snapshot()
        self._call_stack.append(CallFrame(sender, target, selector, depth))
        try:
            if depth > self.max_call_depth:
                raise CallDepthExceeded(depth, self.max_call_depth)
            value = contract.dispatch(CallContext(sender, origin, depth), selector, args)
        except FlashLendError as e:
            self._restore(snapshot)
            return CallResult(success=False, return_data=b"", error=e)
        except RecursionError:
            self._restore(snapshot)
            error = CallDepthExceeded(depth, self.max_call_depth, interpreter=True)
            return CallResult(success=False, return_data=b"", error=error)
        except Exception:
            self._restore(snapshot)
            raise
        finally:
            self._call_stack.pop()
            if not self._call_stack:
                self._journal.clear()

        return CallResult(success=True, return_data=b"" if value is None else value)

    def transact(self, sender: Address, target: Address, selector: Selector, *args: Any) -> Receipt:
        """
        Submit a top-level transaction from an externally owned account.

        The whole transaction, including every nested and re-entrant frame,
        either commits or is discarded. The outcome is recorded in a Receipt
        appended to `receipts`.

        Returns:
            Receipt with status SUCCESS or REVERTED

        Raises:
            ValueError: If sender is not a registered account, or if called
                        from inside a running frame
        """
        if self._call_stack:
            raise ValueError("transact() cannot be nested; contracts must use call()")
        if sender not in self.accounts:
            raise ValueError(f"Account {sender} not registered")

        log_start = len(self.log)
        result = self.call(sender, target, selector, *args)

        sequence = self._next_sequence
        self._next_sequence += 1
        receipt = Receipt(
            sequence_number=sequence,
            sender=sender,
            target=target,
            selector=selector,
            status=TxStatus.SUCCESS if result.success else TxStatus.REVERTED,
            return_value=result.return_data if result.success else None,
            error=result.error,
            logs=tuple(self.log[log_start:]),
        )
        self.receipts.append(receipt)

        if self.verbose:
            icon = "✓" if receipt.succeeded else "✗"
            print(f"{icon} {receipt!r}")
        return receipt

    # ========================================================================
    # CHAIN OPERATIONS
    # ========================================================================

    def clone(self) -> Chain:
        """
        Create an independent copy of this chain.

        Contracts are shallow-copied and rebound to the clone; their mutable
        state lives in storage, which is copied per contract.

        Returns:
            A new Chain with identical accounts, contracts, storage and logs
        """
        if self._call_stack:
            raise ValueError("Cannot clone a chain while a call is executing")
        cloned = Chain.__new__(Chain)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.max_call_depth = self.max_call_depth
        cloned.accounts = self.accounts.copy()
        cloned.log = list(self.log)
        cloned.receipts = list(self.receipts)
        cloned._storage = {addr: dict(store) for addr, store in self._storage.items()}
        cloned._call_stack = []
        cloned._journal = []
        cloned._next_sequence = self._next_sequence
        cloned._next_nonce = self._next_nonce

        cloned.contracts = {}
        for address, contract in self.contracts.items():
            rebound = copy.copy(contract)
            rebound.chain = cloned
            cloned.contracts[address] = rebound
        return cloned
