"""
Test Suite

Tests for the housing subsidy workflow engine backend. Everything runs on the
in-memory collaborators; MongoDB is replaced by unittest.mock where the
repository code itself is under test.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures
    ├── unit/               # Unit tests
    │   ├── __init__.py
    │   ├── test_services/  # Service, notification and repository tests
    │   ├── test_engine/    # Registry, validator and engine tests
    │   └── test_utils/     # Utility tests
    └── integration/        # Integration tests
        ├── __init__.py
        └── test_api/       # API endpoint tests

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
