"""
Integration tests for the advisorylock library.

These tests require a PostgreSQL server, provisioned automatically through
testcontainers. They are skipped when Docker or testcontainers is not
available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
