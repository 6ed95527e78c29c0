"""
flashlend - Single-Asset Flash Lending

A flash lender holds a reserve of one asset and lends any part of it for the
duration of a single callback, provided principal plus fee is back before the
call returns, or the whole operation is undone.

Usage:
    from flashlend import (
        Chain, Token, LenderConfig, sync_lender, RepayingBorrower,
    )

    chain = Chain("main")
    chain.register_account("owner")
    chain.register_account("alice")

    usd = chain.deploy(Token("USD", "US Dollar"), deployer="owner")
    lender = chain.deploy(sync_lender(LenderConfig(usd, "owner", fee_rate=10)))
    borrower = RepayingBorrower(payload=b"done")
    chain.deploy(borrower)

    # Fund the lender and the borrower's fee, then reconcile reserves
    chain.transact("owner", usd, "mint", lender, 1_000_000)
    chain.transact("owner", usd, "mint", borrower.address, 1_000)
    chain.transact("alice", lender, "sync")

    receipt = chain.transact(
        "alice", lender, "flash",
        borrower.address, usd, 100_000, b"", borrower.callback,
    )
    assert receipt.return_value == b"done"
"""

# Core types
from .core import (
    Address,
    Selector,
    Storage,
    ChainView,
    Contract,
    CallContext,
    CallFrame,
    CallResult,
    CallbackDescriptor,
    LogEntry,
    Receipt,
    TxStatus,
    FlashLendError,
    Revert,
    UnsupportedAsset,
    NotOwner,
    NotAContract,
    AssetCallFailed,
    TransferFailed,
    CallbackFailed,
    InsufficientRepayment,
    InvalidArgument,
    UnknownSelector,
    CallDepthExceeded,
    InsufficientBalance,
    InsufficientAllowance,
    NotMinter,
    encode_uint,
    decode_uint,
    encode_bool,
    is_uint,
    require_uint,
    TRUE_WORD,
    FALSE_WORD,
    MAX_UINT256,
    WORD_SIZE,
    DEFAULT_MAX_CALL_DEPTH,
    FLASH_CALLBACK_SELECTOR,
)

# Host
from .chain import Chain

# Fees
from .fees import compute_fee, is_available, FEE_DENOMINATOR, UNAVAILABLE

# Asset transfer guard and balance oracle
from .guard import (
    require_contract,
    returns_success,
    current_balance,
    safe_transfer,
    safe_transfer_from,
)

# Lender
from .lender import (
    LenderConfig,
    FundingStrategy,
    FlashLendingCore,
    AmbientBalanceFunding,
    DepositLedgerFunding,
    sync_lender,
    deposit_lender,
)

# Reference assets
from .token import Token, NoReturnToken, FalseReturnToken

# Reference borrowers
from .borrowers import RepayingBorrower, ReentrantBorrower, RevertingBorrower

__all__ = [
    # Core
    'Address', 'Selector', 'Storage', 'ChainView', 'Contract',
    'CallContext', 'CallFrame', 'CallResult', 'CallbackDescriptor',
    'LogEntry', 'Receipt', 'TxStatus',
    'FlashLendError', 'Revert', 'UnsupportedAsset', 'NotOwner', 'NotAContract',
    'AssetCallFailed', 'TransferFailed', 'CallbackFailed', 'InsufficientRepayment',
    'InvalidArgument', 'UnknownSelector', 'CallDepthExceeded',
    'InsufficientBalance', 'InsufficientAllowance', 'NotMinter',
    'encode_uint', 'decode_uint', 'encode_bool', 'is_uint', 'require_uint',
    'TRUE_WORD', 'FALSE_WORD', 'MAX_UINT256', 'WORD_SIZE',
    'DEFAULT_MAX_CALL_DEPTH', 'FLASH_CALLBACK_SELECTOR',
    # Host
    'Chain',
    # Fees
    'compute_fee', 'is_available', 'FEE_DENOMINATOR', 'UNAVAILABLE',
    # Guard
    'require_contract', 'returns_success', 'current_balance',
    'safe_transfer', 'safe_transfer_from',
    # Lender
    'LenderConfig', 'FundingStrategy', 'FlashLendingCore',
    'AmbientBalanceFunding', 'DepositLedgerFunding',
    'sync_lender', 'deposit_lender',
    # Assets
    'Token', 'NoReturnToken', 'FalseReturnToken',
    # Borrowers
    'RepayingBorrower', 'ReentrantBorrower', 'RevertingBorrower',
]

__version__ = '1.0.0'
