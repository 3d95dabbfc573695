"""
TestRail Reporter - Test Suite Package.

Unit tests run against an in-memory TestRail client (see conftest.py);
no TestRail instance is required.
"""
