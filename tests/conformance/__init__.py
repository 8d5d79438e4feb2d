"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the issuance engine.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operation semantics under token failures
2. reentrancy.py - One operation in flight at a time
3. solvency_properties.py - Solvency, backing, idempotence, round trip and
   liquidation improvement over generated inputs

These tests use hypothesis for property-based testing.
"""
