"""
conftest.py - Shared pytest fixtures for flashlend tests

Provides common fixtures used across unit, conformance and functional tests:
- A quiet chain with the standard accounts (owner, alice, bob, minter)
- A deployed reference asset
- Lenders of both funding variants, funded and reconciled

Helper functions live in tests/builders.py so hypothesis tests can use them
without function-scoped fixtures.
"""

import pytest

from tests.builders import (
    E18,
    make_chain,
    deploy_token,
    funded_sync_lender,
    funded_deposit_lender,
)


# Liquidity used by the standard lender fixtures.
LIQUIDITY = 999 * E18


@pytest.fixture
def chain():
    """Quiet chain with owner, alice, bob and minter registered."""
    return make_chain()


@pytest.fixture
def token(chain):
    """Standard asset whose transfers return true."""
    return deploy_token(chain)


@pytest.fixture
def sync_lender_addr(chain, token):
    """sync/defund lender holding and reserving 999e18 of token."""
    return funded_sync_lender(chain, token, LIQUIDITY)


@pytest.fixture
def deposit_lender_addr(chain, token):
    """deposit/end lender with 999e18 deposited by alice."""
    return funded_deposit_lender(chain, token, LIQUIDITY)
