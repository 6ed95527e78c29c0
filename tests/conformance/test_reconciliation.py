"""
Reserve Reconciliation Conformance Tests

INVARIANT: After a successful flash of amount a with fee f:
    reserves_after = reserves_before + f     (no unsynced balance)
    reserves_after = balanceOf(lender)

INVARIANT: For nested flashes a_1 (outermost) ... a_n, each quoted against
the reserves left by the loans above it:
    reserves_after = reserves_before + Σ f_i

INVARIANT: Outside end(), reserves <= balanceOf(lender) after every
successful operation, and the asset's total supply is never changed by
the lender.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st

from flashlend import RepayingBorrower, ReentrantBorrower, compute_fee
from tests.builders import (
    ALICE, BOB, OWNER, E18, FEE_RATE,
    make_chain, deploy_token, deploy_borrower, deploy_lender,
    funded_sync_lender, funded_deposit_lender,
    mint, balance, reserves, flash,
)


LIQUIDITY = 999 * E18


def nested_fees(amounts, liquidity, fee_rate):
    """Fees charged to a chain of nested loans, outermost first."""
    fees = []
    available = liquidity
    for amount in amounts:
        fees.append(compute_fee(amount, available, fee_rate))
        available -= amount
    return fees


@st.composite
def nested_loan_chain(draw, liquidity=LIQUIDITY, max_depth=4):
    """Loan amounts whose sum fits in liquidity."""
    depth = draw(st.integers(min_value=1, max_value=max_depth))
    amounts = []
    remaining = liquidity
    for _ in range(depth):
        amount = draw(st.integers(min_value=0, max_value=remaining))
        amounts.append(amount)
        remaining -= amount
    return amounts


class TestSingleLoanReconciliation:

    @given(
        variant=st.sampled_from(["sync", "deposit"]),
        amount=st.integers(min_value=0, max_value=LIQUIDITY),
        fee_rate=st.integers(min_value=0, max_value=10_000),
    )
    @settings(max_examples=50, deadline=None)
    def test_reserves_grow_by_fee(self, variant, amount, fee_rate):
        chain = make_chain()
        token = deploy_token(chain)
        if variant == "sync":
            lender = funded_sync_lender(chain, token, LIQUIDITY, fee_rate)
        else:
            lender = funded_deposit_lender(chain, token, LIQUIDITY, fee_rate)
        fee = compute_fee(amount, LIQUIDITY, fee_rate)
        borrower = deploy_borrower(chain, RepayingBorrower(), token, fee)
        supply = chain.get_contract(token).supply()

        receipt = flash(chain, lender, token, borrower, amount)

        assert receipt.succeeded
        assert receipt.events("Flash")[0]["fee"] == fee
        assert reserves(chain, lender) == LIQUIDITY + fee
        assert balance(chain, token, lender) == LIQUIDITY + fee
        assert balance(chain, token, borrower.address) == 0
        assert chain.get_contract(token).supply() == supply


class TestNestedReconciliation:

    @given(amounts=nested_loan_chain())
    @settings(max_examples=50, deadline=None)
    def test_reserves_grow_by_sum_of_fees(self, amounts):
        fees = nested_fees(amounts, LIQUIDITY, FEE_RATE)
        note(f"amounts={amounts} fees={fees}")

        chain = make_chain()
        token = deploy_token(chain)
        lender = funded_sync_lender(chain, token, LIQUIDITY)
        borrower = deploy_borrower(chain, ReentrantBorrower(amounts[1:]), token, sum(fees))

        receipt = flash(chain, lender, token, borrower, amounts[0])

        assert receipt.succeeded
        assert [entry["fee"] for entry in receipt.events("LoanReceived")] == fees
        # Innermost settles first.
        assert [entry["amount"] for entry in receipt.events("Flash")] == amounts[::-1]
        assert reserves(chain, lender) == LIQUIDITY + sum(fees)
        assert balance(chain, token, lender) == LIQUIDITY + sum(fees)
        assert balance(chain, token, borrower.address) == 0


class TestReservesNeverExceedBalance:

    operations = st.lists(
        st.tuples(
            st.sampled_from(["donate", "sync", "flash", "short_flash", "deposit", "defund"]),
            st.integers(min_value=0, max_value=100 * E18),
        ),
        max_size=12,
    )

    @given(variant=st.sampled_from(["sync", "deposit"]), ops=operations)
    @settings(max_examples=50, deadline=None)
    def test_random_operation_sequences(self, variant, ops):
        chain = make_chain()
        token = deploy_token(chain)
        lender = deploy_lender(chain, token, variant)
        mint(chain, token, ALICE, 10 ** 30)
        chain.transact(ALICE, token, "approve", lender, 10 ** 30).raise_for_status()
        borrower = deploy_borrower(chain, RepayingBorrower(), token, 10 ** 24)
        short_borrower = deploy_borrower(chain, RepayingBorrower(shortfall=1), token, 10 ** 24)
        supply = chain.get_contract(token).supply()

        for op, amount in ops:
            if op == "donate":
                chain.transact(ALICE, token, "transfer", lender, amount)
            elif op == "sync":
                chain.transact(BOB, lender, "sync")
            elif op == "deposit":
                chain.transact(ALICE, lender, "deposit", amount)
            elif op == "defund":
                chain.transact(OWNER, lender, "defund")
            elif op == "flash":
                flash(chain, lender, token, borrower, min(amount, reserves(chain, lender)))
            else:
                flash(chain, lender, token, short_borrower, amount)

            assert reserves(chain, lender) <= balance(chain, token, lender)
            assert chain.get_contract(token).supply() == supply
