"""
borrowers.py - Reference Flash Loan Receivers

Contracts that implement the lender callback

    onFlashLoan(initiator, custodian, asset, amount, fee, data) -> payload

and exercise the three ways a settlement can go:
1. RepayingBorrower - pays back principal plus fee (optionally short)
2. ReentrantBorrower - borrows again from inside the callback, then repays
3. RevertingBorrower - fails the callback outright

Repayment is a plain transfer back to the custodian; the lender only checks
the resulting balance. Borrowers must already hold enough of the asset to
cover the fee.
"""

from __future__ import annotations
from typing import Optional, Sequence

from .core import (
    Address, CallContext, CallbackDescriptor, Contract,
    FLASH_CALLBACK_SELECTOR, Revert,
)
from .guard import safe_transfer


class _Borrower(Contract):

    selectors = {FLASH_CALLBACK_SELECTOR: "on_flash_loan"}

    @property
    def callback(self) -> CallbackDescriptor:
        """Descriptor pointing the lender at this contract's callback."""
        return CallbackDescriptor(self.address, FLASH_CALLBACK_SELECTOR)

    def _record(self, initiator: Address, custodian: Address, amount: int, fee: int, data: bytes) -> None:
        self.emit("LoanReceived", initiator=initiator, custodian=custodian,
                  amount=amount, fee=fee, data=data)


class RepayingBorrower(_Borrower):
    """
    Repays `amount + fee - shortfall` and returns a fixed payload.

    Attributes:
        payload: Value returned from the callback
        shortfall: Amount withheld from the repayment
        include_fee: If False, repay only the principal (minus shortfall)
    """

    def __init__(self, payload: bytes = b"", shortfall: int = 0, include_fee: bool = True):
        super().__init__()
        if shortfall < 0:
            raise ValueError(f"shortfall must be non-negative, got {shortfall}")
        self.payload = payload
        self.shortfall = shortfall
        self.include_fee = include_fee

    def repayment(self, amount: int, fee: int) -> int:
        owed = amount + fee if self.include_fee else amount
        return max(owed - self.shortfall, 0)

    def on_flash_loan(
        self,
        ctx: CallContext,
        initiator: Address,
        custodian: Address,
        asset: Address,
        amount: int,
        fee: int,
        data: bytes,
    ) -> bytes:
        self._record(initiator, custodian, amount, fee, data)
        safe_transfer(self.chain, self.address, asset, custodian, self.repayment(amount, fee))
        return self.payload


class ReentrantBorrower(_Borrower):
    """
    Takes a chain of nested loans before repaying any of them.

    On the callback at nesting level i (0 = outermost), if
    i < len(nested_amounts) it calls flash(nested_amounts[i]) on the same
    custodian, then repays its own loan in full. The nesting level is kept
    in storage so an aborted nested loan leaves no trace.

    Attributes:
        nested_amounts: Principal of each nested loan, outermost first
        payload: Value returned from every callback
    """

    def __init__(self, nested_amounts: Sequence[int], payload: bytes = b""):
        super().__init__()
        self.nested_amounts = tuple(nested_amounts)
        self.payload = payload

    def on_flash_loan(
        self,
        ctx: CallContext,
        initiator: Address,
        custodian: Address,
        asset: Address,
        amount: int,
        fee: int,
        data: bytes,
    ) -> bytes:
        self._record(initiator, custodian, amount, fee, data)
        level = self.sload("level")
        if level < len(self.nested_amounts):
            self.sstore("level", level + 1)
            self.emit("NestedLoan", level=level + 1, depth=self.chain.call_depth)
            result = self.chain.call(
                self.address, custodian, "flash",
                self.address, asset, self.nested_amounts[level], data, self.callback,
            )
            if not result.success:
                raise result.error
            self.sstore("level", level)
        safe_transfer(self.chain, self.address, asset, custodian, amount + fee)
        return self.payload


class RevertingBorrower(_Borrower):
    """Fails every callback with the configured reason."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__()
        self.reason = reason or "borrower refused the loan"

    def on_flash_loan(self, ctx: CallContext, *args) -> bytes:
        raise Revert(self.reason)
