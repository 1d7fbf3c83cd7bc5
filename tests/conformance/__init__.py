"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the DSC engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - A rejected operation changes nothing
2. solvency_invariant.py - Accounts leave mint/redeem solvent; debt equals supply
3. round_trip.py - USD conversion loses at most one unit of truncation

These tests use hypothesis for property-based testing.
"""
