"""
token.py - Reference Fungible Asset Contracts

This module provides asset contracts the lender can manage:
1. Token - balances, allowances, minting; transfers return the true word
2. NoReturnToken - transfers return nothing on success
3. FalseReturnToken - failed transfers return the false word instead of reverting

Balances live in host storage under ("balance", holder) keys and allowances
under ("allowance", holder, spender), so every transfer is rolled back with
the frame that made it. Each transfer emits a Transfer event.

Example:
    chain = Chain("main", verbose=False)
    chain.register_account("alice")
    usd = chain.deploy(Token("USD", "US Dollar"), deployer="alice")
    chain.transact("alice", usd, "mint", "alice", 1_000)
    chain.transact("alice", usd, "transfer", "bob", 250)
"""

from __future__ import annotations
from typing import Optional

from .core import (
    Address, CallContext, Contract,
    TRUE_WORD, FALSE_WORD, encode_uint, require_uint,
    InsufficientBalance, InsufficientAllowance, NotMinter,
)


class Token(Contract):
    """
    Fungible asset with the standard balance/transfer/allowance interface.

    Attributes:
        symbol: Ticker (e.g. "USD")
        name: Human-readable name
        decimals: Display precision; amounts are always integers of base units
        minter: Address allowed to mint (default: the deployer)
    """

    selectors = {
        "balanceOf": "balance_of",
        "totalSupply": "total_supply",
        "allowance": "allowance",
        "transfer": "transfer",
        "transferFrom": "transfer_from",
        "approve": "approve",
        "mint": "mint",
    }

    def __init__(self, symbol: str, name: str, decimals: int = 18, minter: Optional[Address] = None):
        super().__init__()
        if not symbol or not symbol.strip():
            raise ValueError("Token symbol cannot be empty")
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        self.symbol = symbol
        self.name = name
        self.decimals = decimals
        self.minter = minter

    def on_deploy(self, deployer: Optional[Address]) -> None:
        if self.minter is None:
            self.minter = deployer
        self.sstore("total_supply", 0)

    # ------------------------------------------------------------------
    # Direct reads (host-side helpers, not part of the call interface)
    # ------------------------------------------------------------------

    def balance(self, holder: Address) -> int:
        return self.sload(("balance", holder))

    def supply(self) -> int:
        return self.sload("total_supply")

    # ------------------------------------------------------------------
    # External interface
    # ------------------------------------------------------------------

    def balance_of(self, ctx: CallContext, holder: Address) -> bytes:
        return encode_uint(self.balance(holder))

    def total_supply(self, ctx: CallContext) -> bytes:
        return encode_uint(self.supply())

    def allowance(self, ctx: CallContext, holder: Address, spender: Address) -> bytes:
        return encode_uint(self.sload(("allowance", holder, spender)))

    def approve(self, ctx: CallContext, spender: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        self.sstore(("allowance", ctx.sender, spender), amount)
        self.emit("Approval", owner=ctx.sender, spender=spender, amount=amount)
        return TRUE_WORD

    def transfer(self, ctx: CallContext, to: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        self._move(ctx.sender, to, amount)
        return self._success()

    def transfer_from(self, ctx: CallContext, src: Address, to: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        key = ("allowance", src, ctx.sender)
        allowed = self.sload(key)
        if allowed < amount:
            raise InsufficientAllowance(src, ctx.sender, allowed, amount)
        self.sstore(key, allowed - amount)
        self._move(src, to, amount)
        return self._success()

    def mint(self, ctx: CallContext, to: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        if ctx.sender != self.minter:
            raise NotMinter(ctx.sender, self.minter)
        self.sstore(("balance", to), self.balance(to) + amount)
        self.sstore("total_supply", self.supply() + amount)
        self.emit("Transfer", src=None, to=to, amount=amount)
        return self._success()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _success(self) -> bytes:
        return TRUE_WORD

    def _move(self, src: Address, to: Address, amount: int) -> None:
        held = self.balance(src)
        if held < amount:
            raise InsufficientBalance(src, held, amount)
        self.sstore(("balance", src), held - amount)
        self.sstore(("balance", to), self.balance(to) + amount)
        self.emit("Transfer", src=src, to=to, amount=amount)


class NoReturnToken(Token):
    """Token whose successful transfers return no data."""

    def _success(self) -> bytes:
        return b""


class FalseReturnToken(Token):
    """Token that reports failed transfers by returning false instead of reverting."""

    def transfer(self, ctx: CallContext, to: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        if self.balance(ctx.sender) < amount:
            return FALSE_WORD
        return super().transfer(ctx, to, amount)

    def transfer_from(self, ctx: CallContext, src: Address, to: Address, amount: int) -> bytes:
        require_uint("amount", amount)
        if self.balance(src) < amount or self.sload(("allowance", src, ctx.sender)) < amount:
            return FALSE_WORD
        return super().transfer_from(ctx, src, to, amount)
