"""
Pytest configuration and fixtures for refsync tests.
Provides shared fixtures for in-memory environments and test setup.
"""

import os
from pathlib import Path

import pytest

from factories import build_source, build_target
from fakes import InMemoryRecordService


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "e2e: runs the CLI in a subprocess")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def set_test_env_vars() -> None:
    """Set default test environment variables if not already set."""
    defaults = {
        "REFSYNC_SOURCE_URL": "https://source.example.com",
        "REFSYNC_TARGET_URL": "https://target.example.com",
        "REFSYNC_TENANT_ID": "tenant",
        "REFSYNC_CLIENT_ID": "client",
        "REFSYNC_CLIENT_SECRET": "secret",
        "VAULT_ADDR": "http://localhost:8200",
        "VAULT_TOKEN": "dev-root-token",
    }

    for key, value in defaults.items():
        if key not in os.environ:
            os.environ[key] = value


@pytest.fixture
def source_service() -> InMemoryRecordService:
    """Source environment with three countries, one inactive, and two tags."""
    return build_source()


@pytest.fixture
def target_service() -> InMemoryRecordService:
    """Empty target environment with the same schema."""
    return build_target()
