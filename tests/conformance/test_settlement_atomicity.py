"""
Settlement Atomicity Conformance Tests

INVARIANT: A flash that fails at any stage leaves
    - every contract's storage (reserves, balances, allowances)
    - the event log
exactly as they were before the transaction.

Failures are injected at each stage of settlement: asset validation,
disbursement, callback, and reconciliation.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from flashlend import (
    RepayingBorrower, RevertingBorrower, ReentrantBorrower, compute_fee, UNAVAILABLE,
    UnsupportedAsset, TransferFailed, CallbackFailed, InsufficientRepayment,
)
from tests.builders import (
    E18, FEE_RATE,
    make_chain, deploy_token, deploy_borrower, funded_sync_lender, funded_deposit_lender,
    mint, flash,
)


LIQUIDITY = 999 * E18

loan_amounts = st.integers(min_value=0, max_value=LIQUIDITY)
variants = st.sampled_from(["sync", "deposit"])


def snapshot(chain):
    """Copy of all contract storage plus the log length."""
    storage = {address: dict(chain.storage_of(address)) for address in chain.contracts}
    return storage, len(chain.log)


def setup(variant):
    chain = make_chain()
    token = deploy_token(chain)
    if variant == "sync":
        lender = funded_sync_lender(chain, token, LIQUIDITY)
    else:
        lender = funded_deposit_lender(chain, token, LIQUIDITY)
    return chain, token, lender


class TestFailedSettlementLeavesNoTrace:

    @given(
        variant=variants,
        amount=st.integers(min_value=1, max_value=LIQUIDITY),
        shortfall=st.integers(min_value=1, max_value=10 ** 18),
    )
    @settings(max_examples=50, deadline=None)
    def test_short_repayment(self, variant, amount, shortfall):
        chain, token, lender = setup(variant)
        fee = compute_fee(amount, LIQUIDITY, FEE_RATE)
        borrower = deploy_borrower(chain, RepayingBorrower(shortfall=shortfall), token, fee)
        before = snapshot(chain)

        receipt = flash(chain, lender, token, borrower, amount)

        assert isinstance(receipt.error, InsufficientRepayment)
        assert receipt.error.shortfall == min(shortfall, amount + fee)
        assert snapshot(chain) == before

    @given(variant=variants, amount=loan_amounts)
    @settings(max_examples=50, deadline=None)
    def test_reverting_callback(self, variant, amount):
        chain, token, lender = setup(variant)
        borrower = deploy_borrower(chain, RevertingBorrower())
        before = snapshot(chain)

        receipt = flash(chain, lender, token, borrower, amount)

        assert isinstance(receipt.error, CallbackFailed)
        assert snapshot(chain) == before

    @given(variant=variants, excess=st.integers(min_value=1, max_value=10 ** 24))
    @settings(max_examples=50, deadline=None)
    def test_undisbursable_amount(self, variant, excess):
        chain, token, lender = setup(variant)
        borrower = deploy_borrower(chain, RepayingBorrower(include_fee=False))
        before = snapshot(chain)

        receipt = flash(chain, lender, token, borrower, LIQUIDITY + excess)

        assert isinstance(receipt.error, TransferFailed)
        assert snapshot(chain) == before

    @given(
        variant=variants,
        excess=st.integers(min_value=1, max_value=10 ** 24),
        surplus=st.integers(min_value=0, max_value=10 ** 24),
    )
    @settings(max_examples=50, deadline=None)
    def test_amount_above_reserves_covered_by_idle_balance(self, variant, excess, surplus):
        """Idle tokens let the principal go out, but the unavailable fee is never repaid."""
        chain, token, lender = setup(variant)
        mint(chain, token, lender, excess + surplus)
        borrower = deploy_borrower(chain, RepayingBorrower(include_fee=False))
        before = snapshot(chain)

        receipt = flash(chain, lender, token, borrower, LIQUIDITY + excess)

        assert isinstance(receipt.error, InsufficientRepayment)
        assert receipt.error.expected == LIQUIDITY + UNAVAILABLE
        assert snapshot(chain) == before

    @given(variant=variants, amount=loan_amounts)
    @settings(max_examples=30, deadline=None)
    def test_unsupported_asset(self, variant, amount):
        chain, token, lender = setup(variant)
        other = deploy_token(chain, symbol="WETH")
        borrower = deploy_borrower(chain, RepayingBorrower(), token, E18)
        before = snapshot(chain)

        receipt = flash(chain, lender, other, borrower, amount)

        assert isinstance(receipt.error, UnsupportedAsset)
        assert snapshot(chain) == before

    @given(
        outer=st.integers(min_value=1, max_value=500 * E18),
        inner=st.integers(min_value=1, max_value=499 * E18),
    )
    @settings(max_examples=30, deadline=None)
    def test_nested_failure_discards_outer_loan(self, outer, inner):
        """A borrower without fee float cannot repay either loan."""
        chain, token, lender = setup("sync")
        borrower = deploy_borrower(chain, ReentrantBorrower([inner]))
        before = snapshot(chain)

        receipt = flash(chain, lender, token, borrower, outer)

        if compute_fee(outer, LIQUIDITY, FEE_RATE) + compute_fee(inner, LIQUIDITY - outer, FEE_RATE):
            assert not receipt.succeeded
            assert snapshot(chain) == before
        else:
            assert receipt.succeeded
