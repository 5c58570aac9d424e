# nextspark/conftest.py
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Tests run against a throwaway SQLite file unless TEST_DATABASE_URL is set.
# These must be in the environment before nextspark.core.config is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="nextspark-tests-")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}")
os.environ.setdefault("DATABASE_URL", os.environ["TEST_DATABASE_URL"])
os.environ.setdefault("AUTH_SECRET", "test-secret-for-session-tokens-0123456789")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ALLOW_HEADER_AUTH", "true")
for _var in ("WEBHOOK_URL_DEFAULT", "WEBHOOK_URL_TASKS", "WEBHOOK_URL_SUBSCRIPTIONS", "STRIPE_SECRET_KEY"):
    os.environ.pop(_var, None)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Create all database tables once per test session."""
    from nextspark.core.database import create_all_tables

    create_all_tables()
    yield


@pytest.fixture(scope="function")
def reset_db():
    """
    Empty every table and reseed the plan catalogue.

    Use in any test that touches the database.
    """
    from nextspark.core.database import truncate_all_tables
    from nextspark.features.billing.service import seed_plans

    truncate_all_tables()
    seed_plans()
    yield
    truncate_all_tables()


@pytest.fixture(scope="function")
def clean_registry():
    """Isolate the scheduled-action handler registry per test."""
    from nextspark.features.scheduled_actions.registry import clear_action_registry

    clear_action_registry()
    yield
    clear_action_registry()


@pytest.fixture
def make_user(reset_db):
    """Create users on demand: make_user("user-1", role="member")."""
    from sqlalchemy import update

    from nextspark.core.database import get_db_session, users
    from nextspark.features.users.service import get_or_create_user

    def _make(user_id: str, email=None, name=None, role: str = "member"):
        user = get_or_create_user(user_id, email=email or f"{user_id}@example.com", name=name or user_id)
        if role != "member":
            with get_db_session() as session:
                session.execute(update(users).where(users.c.id == user_id).values(role=role))
        return user

    return _make


@pytest.fixture
def team(make_user):
    """A team owned by "owner-1" on the default (free) plan."""
    from nextspark.features.teams.service import create_team

    make_user("owner-1")
    return create_team("owner-1", "Acme Team")


@pytest.fixture
def add_member(team, make_user):
    """Join a user to `team` with a role, bypassing invite checks."""
    from nextspark.core.database import get_db_session
    from nextspark.features.teams.members import insert_membership

    def _add(user_id: str, role: str = "member", team_id=None):
        make_user(user_id)
        with get_db_session() as session:
            insert_membership(session, team_id or team.id, user_id, role)
        return user_id

    return _add


@pytest.fixture
def client(reset_db):
    """TestClient with the app lifespan running."""
    from fastapi.testclient import TestClient

    from nextspark.main import app

    with TestClient(app) as test_client:
        yield test_client
