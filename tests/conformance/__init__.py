"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateral engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operations with compensated external effects
2. solvency.py - No committed operation leaves an indebted account below 1.0
3. reentrancy.py - Nested mutating calls are rejected
4. round_trip.py - Value/amount conversions never overstate collateral

These tests use hypothesis for property-based testing.
"""
