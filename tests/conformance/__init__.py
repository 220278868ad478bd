"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. vault_conservation.py - Aggregates, total debt and liquidation payouts balance
2. vault_atomicity.py - Every operation fully commits or leaves no trace
3. reentrancy.py - Collaborators re-entering the vault see consistent state and cannot mutate

These tests use hypothesis for property-based testing.
"""
