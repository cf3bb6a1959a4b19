# agenda/conftest.py
import os
import sys
from pathlib import Path

import pytest

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Tests run against a shared in-memory SQLite database unless told otherwise
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """
    Recreate all tables before each test.

    Every test starts from an empty schema; plans are seeded by tests that
    need them.
    """
    from agenda.core.database import reset_database

    reset_database()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    from agenda.core.metrics import METRICS

    METRICS.reset()
    yield


@pytest.fixture
def seeded_plans():
    """Default plans keyed by name (Basic, Professional, Premium)."""
    from agenda.features.plans.service import seed_plans

    return seed_plans()


@pytest.fixture
def company_factory(seeded_plans):
    """Create a company on a named default plan and return its id."""
    from agenda.features.plans.service import create_company
    from agenda.models.plan import CompanyCreate

    def _create(plan: str = "Basic", name: str = "Studio") -> int:
        plan_id = seeded_plans[plan] if plan else None
        return create_company(CompanyCreate(name=name, plan_id=plan_id))

    return _create
