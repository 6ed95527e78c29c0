"""
fees.py - Flash Loan Fee Calculator

Pure functions, no host access:
    compute_fee(amount, reserves, fee_rate) -> fee or UNAVAILABLE
    is_available(fee) -> bool

The fee rate is expressed in basis points (denominator 10_000) and the fee is
truncated toward zero. An amount larger than the reserves cannot be serviced
and is quoted at the UNAVAILABLE sentinel, which no borrower can repay.
"""

from __future__ import annotations

from .core import MAX_UINT256


# Basis-point denominator: a fee rate of 10 is 0.1%.
FEE_DENOMINATOR = 10_000

# Quote returned when the requested amount exceeds available liquidity.
UNAVAILABLE = MAX_UINT256


def compute_fee(amount: int, reserves: int, fee_rate: int) -> int:
    """
    Quote the fee for borrowing `amount` against the current reserves.

    Args:
        amount: Principal requested
        reserves: Liquidity currently available to lend
        fee_rate: Fee in basis points

    Returns:
        floor(amount * fee_rate / 10_000), or UNAVAILABLE if amount > reserves

    Example:
        compute_fee(10**18, 999 * 10**18, 10)   # 10**15
        compute_fee(999, 10**6, 10)             # 0, since 999 * 10 < 10_000
        compute_fee(2, 1, 10)                   # UNAVAILABLE
    """
    if amount > reserves:
        return UNAVAILABLE
    return amount * fee_rate // FEE_DENOMINATOR


def is_available(fee: int) -> bool:
    """False when a quote is the UNAVAILABLE sentinel rather than a real fee."""
    return fee != UNAVAILABLE
