"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of a flash lender.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_fee_properties.py - Fee formula, truncation, monotonicity, sentinel
2. test_settlement_atomicity.py - A failed flash leaves no trace
3. test_reconciliation.py - Reserves grow by exactly the fees charged
4. test_access_control.py - Asset gating and owner-only operations

These tests use hypothesis for property-based testing.
"""
