"""
lender.py - Single-Asset Flash Lender

This module provides the flash lending contract and its funding variants:
1. LenderConfig - immutable (asset, owner, fee_rate) triple
2. FlashLendingCore - reserve ledger, access control and the settlement
   state machine shared by both variants
3. AmbientBalanceFunding - reserves synchronized from the actual balance
   (sync) and drained by the owner (defund)
4. DepositLedgerFunding - reserves grown only by explicit deposits (deposit)
   and swept by the owner (end)
5. sync_lender() / deposit_lender() - factories for the two variants

=== SETTLEMENT ===

flash(receiver, asset, amount, data, callback) walks through:

    Idle → AssetValidated → FeeComputed → PrincipalDisbursed
         → CallbackInvoked → Reconciled → Idle

    1. asset must be the managed asset
    2. fee := compute_fee(amount)         (UNAVAILABLE if amount > reserves)
    3. reserves := max(reserves - amount, 0); transfer amount to receiver
    4. callback.target.<callback.selector>(initiator, custodian, asset,
                                           amount, fee, data)
    5. expected := reserves before step 3 + fee; actual := balance;
       reserves := actual
       actual < expected  ⟹  InsufficientRepayment
    6. emit Flash(asset, amount, fee); return the callback payload

Any fault reverts the whole frame, so no partial settlement is observable.

=== RE-ENTRANCY ===

There is no lock. A callback may call flash again before repaying. A nested
loan is quoted against the reserves left after the outer disbursement and
checked against them in its own step 5. The outer loan then passes only once
the balance covers its own pre-loan reserves plus every fee charged along
the way.

=== RESERVES INVARIANT ===

    reserves <= balanceOf(lender)    after every successful operation

except after end(), which sweeps the balance without resetting reserves.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Tuple

from .core import (
    Address, CallContext, CallbackDescriptor, Contract, Selector,
    is_uint, require_uint,
    UnsupportedAsset, NotOwner, CallbackFailed, InsufficientRepayment, InvalidArgument,
)
from .fees import compute_fee
from . import guard


@dataclass(frozen=True, slots=True)
class LenderConfig:
    """
    Immutable lender configuration, fixed at construction.

    Attributes:
        asset: Address of the only asset this lender manages
        owner: Address allowed to drain the lender (defund / end)
        fee_rate: Fee in basis points (10 = 0.1%)
    """
    asset: Address
    owner: Address
    fee_rate: int

    def __post_init__(self):
        if not self.asset or not self.asset.strip():
            raise ValueError("LenderConfig asset cannot be empty")
        if not self.owner or not self.owner.strip():
            raise ValueError("LenderConfig owner cannot be empty")
        if not is_uint(self.fee_rate):
            raise ValueError(f"LenderConfig fee_rate must be a uint256, got {self.fee_rate!r}")


class FundingStrategy(Protocol):
    """
    How liquidity enters and leaves a lender.

    A strategy publishes extra selectors, mapped to its own methods. Each
    method receives the lender, the CallContext and the decoded arguments.
    """

    name: str
    selectors: Mapping[Selector, str]


class FlashLendingCore(Contract):
    """
    Flash lender for a single asset, parameterized by a funding strategy.

    Storage:
        "reserves": liquidity believed available to lend

    External interface (core):
        flash, maxFlashLoan, flashFee, reserves, asset, owner, feeRate
    plus whatever the funding strategy exposes.
    """

    core_selectors = {
        "flash": "flash",
        "maxFlashLoan": "max_flash_loan",
        "flashFee": "flash_fee",
        "reserves": "get_reserves",
        "asset": "get_asset",
        "owner": "get_owner",
        "feeRate": "get_fee_rate",
    }

    def __init__(self, config: LenderConfig, funding: FundingStrategy):
        super().__init__()
        clash = set(self.core_selectors) & set(funding.selectors)
        if clash:
            raise ValueError(f"Funding strategy {funding.name} redefines {sorted(clash)}")
        self.config = config
        self.funding = funding

    def on_deploy(self, deployer: Optional[Address]) -> None:
        self.set_reserves(0)

    @property
    def selectors(self) -> Mapping[Selector, str]:
        return {**self.core_selectors, **self.funding.selectors}

    def dispatch(self, ctx: CallContext, selector: Selector, args: Tuple[Any, ...]) -> Any:
        method_name = self.funding.selectors.get(selector)
        if method_name is not None:
            return getattr(self.funding, method_name)(self, ctx, *args)
        return super().dispatch(ctx, selector, args)

    # ========================================================================
    # RESERVE LEDGER
    # ========================================================================

    @property
    def reserves(self) -> int:
        return self.sload("reserves")

    def set_reserves(self, value: int) -> None:
        self.sstore("reserves", value)

    def current_balance(self) -> int:
        """Actual balance of the managed asset held by this lender."""
        return guard.current_balance(self.chain, self.config.asset, self.address)

    def transfer_out(self, to: Address, amount: int) -> None:
        guard.safe_transfer(self.chain, self.address, self.config.asset, to, amount)

    def quote(self, amount: int) -> int:
        return compute_fee(amount, self.reserves, self.config.fee_rate)

    # ========================================================================
    # ACCESS CONTROL
    # ========================================================================

    def require_owner(self, ctx: CallContext) -> None:
        if ctx.sender != self.config.owner:
            raise NotOwner(ctx.sender, self.config.owner)

    def require_asset(self, asset: Address) -> None:
        if asset != self.config.asset:
            raise UnsupportedAsset(asset, self.config.asset)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def max_flash_loan(self, ctx: CallContext, asset: Address) -> int:
        self.require_asset(asset)
        return self.reserves

    def flash_fee(self, ctx: CallContext, asset: Address, amount: int) -> int:
        self.require_asset(asset)
        require_uint("amount", amount)
        return self.quote(amount)

    def get_reserves(self, ctx: CallContext) -> int:
        return self.reserves

    def get_asset(self, ctx: CallContext) -> Address:
        return self.config.asset

    def get_owner(self, ctx: CallContext) -> Address:
        return self.config.owner

    def get_fee_rate(self, ctx: CallContext) -> int:
        return self.config.fee_rate

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    def flash(
        self,
        ctx: CallContext,
        receiver: Address,
        asset: Address,
        amount: int,
        data: bytes,
        callback: CallbackDescriptor,
    ) -> Any:
        """
        Lend `amount` to receiver for the duration of one callback.

        Args:
            ctx: Call context; ctx.sender is reported to the callback as initiator
            receiver: Address credited with the principal
            asset: Must be the managed asset
            amount: Principal
            data: Opaque payload forwarded to the callback
            callback: Contract and function invoked after disbursement

        Returns:
            The callback's return payload, unchanged

        Raises:
            UnsupportedAsset: asset is not the managed asset
            TransferFailed: the principal could not be disbursed
            CallbackFailed: the callback reverted
            InsufficientRepayment: the balance after the callback is below
                                   the pre-loan reserves plus fee
        """
        self.require_asset(asset)
        require_uint("amount", amount)
        if not isinstance(callback, CallbackDescriptor):
            raise InvalidArgument(f"callback must be a CallbackDescriptor, got {callback!r}")

        fee = self.quote(amount)

        reserves_before = self.reserves
        self.set_reserves(max(reserves_before - amount, 0))
        self.transfer_out(receiver, amount)

        result = self.chain.call(
            self.address, callback.target, callback.selector,
            ctx.sender, self.address, asset, amount, fee, data,
        )
        if not result.success:
            raise CallbackFailed(callback.target, callback.selector, result.error)

        expected = reserves_before + fee
        actual = self.current_balance()
        self.set_reserves(actual)
        if actual < expected:
            raise InsufficientRepayment(expected, actual)

        self.emit("Flash", asset=asset, amount=amount, fee=fee)
        return result.return_data


# ============================================================================
# FUNDING STRATEGIES
# ============================================================================

class AmbientBalanceFunding:
    """
    Reserves follow the lender's actual balance.

    sync()   - anyone: reserves := balance
    defund() - owner:  reserves := 0, whole balance to the owner
    """

    name = "sync/defund"
    selectors = {"sync": "sync", "defund": "defund"}

    def sync(self, lender: FlashLendingCore, ctx: CallContext) -> None:
        balance = lender.current_balance()
        lender.set_reserves(balance)
        lender.emit("Sync", reserves=balance)

    def defund(self, lender: FlashLendingCore, ctx: CallContext) -> None:
        lender.require_owner(ctx)
        lender.set_reserves(0)
        balance = lender.current_balance()
        lender.transfer_out(lender.config.owner, balance)
        lender.emit("Defund", amount=balance)


class DepositLedgerFunding:
    """
    Reserves count only what was deposited through the lender.

    deposit(amount) - anyone: pull amount from the caller, reserves += amount
    end()           - owner:  whole balance to the owner, reserves untouched
    """

    name = "deposit/end"
    selectors = {"deposit": "deposit", "end": "end"}

    def deposit(self, lender: FlashLendingCore, ctx: CallContext, amount: int) -> None:
        require_uint("amount", amount)
        guard.safe_transfer_from(
            lender.chain, lender.address, lender.config.asset,
            ctx.sender, lender.address, amount,
        )
        lender.set_reserves(lender.reserves + amount)
        lender.emit("Deposit", depositor=ctx.sender, amount=amount)

    def end(self, lender: FlashLendingCore, ctx: CallContext) -> None:
        lender.require_owner(ctx)
        balance = lender.current_balance()
        lender.transfer_out(lender.config.owner, balance)
        lender.emit("End", amount=balance)


def sync_lender(config: LenderConfig) -> FlashLendingCore:
    """Create an undeployed lender using the sync/defund funding model."""
    return FlashLendingCore(config, AmbientBalanceFunding())


def deposit_lender(config: LenderConfig) -> FlashLendingCore:
    """Create an undeployed lender using the deposit/end funding model."""
    return FlashLendingCore(config, DepositLedgerFunding())
