"""
Shared fixtures for adversarial tests.

Every attack runs against both store backends: the in-memory repository
and PostgreSQL (skipped when no database is reachable).
"""

import pytest

from src.adapters.repository.memory import InMemoryAccountRepository

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture(params=["memory", "postgres"])
def repository(request: pytest.FixtureRequest):
    """Repository for each backend; overrides the memory-only root fixture."""
    if request.param == "postgres":
        return request.getfixturevalue("pg_repository")
    return InMemoryAccountRepository()
