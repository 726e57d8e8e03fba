# tests/__init__.py
"""
Gradian Test Suite
==================

Automated tests for the Gradian schema-driven procurement backend.

Test Structure:
- conftest.py: Shared pytest configuration and fixtures
- test_core.py: Repository, service, cache, validation and relation logic
- test_api.py: REST API endpoint integration tests
- test_metrics.py: Dashboard aggregation functions
- test_config.py: Configuration loading and validation
- test_database.py: SQLAlchemy collection store and Alembic migrations
- test_cli.py: Typer command line interface

Usage:
    # Run all tests
    pytest tests/

    # Run only API tests
    pytest -m api tests/

    # Run with coverage
    pytest --cov=gradian tests/

Author: Gradian Development Team
License: MIT
Version: 1.0.0
"""

# Test configuration constants
TEST_PEPPER = "test-pepper"
TEST_COMPANY_ID = "demo-company"
TEST_USER_PASSWORD = "correct-horse-battery"

# Fixed point in time used by the frozen clock fixtures
TEST_NOW_ISO = "2024-06-15T12:00:00.000Z"

__all__ = [
    "TEST_PEPPER",
    "TEST_COMPANY_ID",
    "TEST_USER_PASSWORD",
    "TEST_NOW_ISO",
]
