"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the ticketing ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Tokens are never created or destroyed
2. atomicity.py - All-or-nothing transaction semantics
3. idempotency.py - Each ticket hash is consumed at most once
4. determinism.py - Reproducible behavior and replay
5. canonicalization.py - Ticket hash and intent id identity
6. temporal.py - Block ordering, unlock maturity and expiry

These tests use hypothesis for property-based testing.
"""
