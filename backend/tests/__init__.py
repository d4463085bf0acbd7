"""
Test Suite

Service, engine and HTTP tests for the QuickDesk backend. MongoDB is
replaced by mongomock, so no server is needed.

To run tests:
    pytest
    pytest backend/tests/test_api.py
"""
