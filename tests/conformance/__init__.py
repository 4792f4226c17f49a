"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending core.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Token conservation and custody/pool agreement
2. atomicity.py - All-or-nothing operation semantics
3. thresholds.py - Integer borrow-limit, liquidation and utilization arithmetic

These tests use hypothesis for property-based testing.
"""
