"""
guard.py - Asset Transfer Guard and Balance Oracle

Every interaction the lender has with the managed asset goes through this
module. Asset implementations disagree on how a transfer reports success:
some return the boolean-true word, some return nothing at all. A transfer is
accepted when the call succeeded and it returned either of those; any other
outcome (revert, false, unexpected data) is a TransferFailed.

Calls to an address without code succeed silently on the host, so every
helper first checks that the asset is actually a contract. Recipients are
not checked: the owner receiving a defund or end sweep is a plain account.
"""

from __future__ import annotations

from .core import (
    Address, CallResult, ChainView,
    TRUE_WORD, decode_uint,
    NotAContract, AssetCallFailed, TransferFailed,
)


def require_contract(chain: ChainView, address: Address) -> None:
    """Raise NotAContract if nothing is deployed at address."""
    if not chain.has_code(address):
        raise NotAContract(address)


def returns_success(result: CallResult) -> bool:
    """
    Apply the dual success convention to a transfer call.

    Returns:
        True if the call succeeded and returned either no data or the
        boolean-true word
    """
    if not result.success:
        return False
    if not result.return_data:
        return True
    return result.return_data == TRUE_WORD


def current_balance(chain: ChainView, asset: Address, holder: Address) -> int:
    """
    Read holder's balance of asset via balanceOf.

    Raises:
        NotAContract: If asset has no code
        AssetCallFailed: If balanceOf reverted or did not return one word
    """
    require_contract(chain, asset)
    result = chain.call(holder, asset, "balanceOf", holder)
    if not result.success:
        raise AssetCallFailed(asset, "balanceOf", result.error)
    try:
        return decode_uint(result.return_data)
    except ValueError as e:
        raise AssetCallFailed(asset, "balanceOf", e) from e


def safe_transfer(
    chain: ChainView,
    sender: Address,
    asset: Address,
    to: Address,
    amount: int,
) -> None:
    """
    Move `amount` of asset from sender to `to`.

    Raises:
        NotAContract: If asset has no code
        TransferFailed: If the transfer did not report success
    """
    require_contract(chain, asset)
    result = chain.call(sender, asset, "transfer", to, amount)
    if not returns_success(result):
        raise TransferFailed(asset, to, amount, result.error)


def safe_transfer_from(
    chain: ChainView,
    sender: Address,
    asset: Address,
    src: Address,
    to: Address,
    amount: int,
) -> None:
    """
    Pull `amount` of asset from src to `to`, spending sender's allowance.

    Raises:
        NotAContract: If asset has no code
        TransferFailed: If the transfer did not report success
    """
    require_contract(chain, asset)
    result = chain.call(sender, asset, "transferFrom", src, to, amount)
    if not returns_success(result):
        raise TransferFailed(asset, to, amount, result.error)
