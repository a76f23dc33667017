"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the dividend token ledger.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting and escrow backing
2. atomicity.py - All-or-nothing operation semantics
3. determinism.py - Reproducible behavior and replay
4. temporal.py - Time ordering and historical reconstruction
5. token_invariants.py - Supply, holder registry and dividend claims

These tests use hypothesis for property-based testing.
"""
