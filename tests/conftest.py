"""
Pytest configuration and fixtures
Every test gets a fresh in-memory SQLite database seeded with the plan catalog
"""
import pytest
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-subscription-tests-only-min-32-chars"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce log noise in tests
os.environ.pop("REDIS_URL", None)  # Plan cache stays in memory

# Import after setting env vars
from creator_subscriptions.db import Base, get_db, init_db, create_database_engine
from creator_subscriptions.db.models import User, UserRole
from creator_subscriptions.services.plan_catalog import PlanCatalog
from creator_subscriptions.services.plan_cache import get_plan_cache
from creator_subscriptions.services.subscription_service import SubscriptionService
from creator_subscriptions.auth import create_access_token
from creator_subscriptions.app import create_app

# Fixed "now" for tests that control time
NOW = datetime(2026, 3, 10, 12, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def test_engine():
    """Fresh in-memory database per test"""
    engine = create_database_engine("sqlite:///:memory:")
    init_db(engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    """Create a database session for each test"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def catalog(db_session):
    """Plan catalog seeded from the bundled plans.yaml"""
    plan_catalog = PlanCatalog(db_session)
    plan_catalog.seed_from_yaml()
    return plan_catalog


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def subscription_service(db_session, catalog, clock):
    return SubscriptionService(db_session, catalog=catalog, clock=clock)


@pytest.fixture
def make_user(db_session):
    """Factory for users, optionally attached to a team"""
    counter = {"n": 0}

    def _make_user(team=None, role=UserRole.MEMBER.value, name=None):
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@example.com",
            name=name or f"User {counter['n']}",
            role=role,
            team_id=team.id if team is not None else None,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture(scope="function", autouse=True)
def clear_plan_cache():
    """Clear the global plan cache before each test"""
    get_plan_cache().invalidate()
    yield
    get_plan_cache().invalidate()


@pytest.fixture(scope="function")
def app(db_session, catalog):
    """Application wired to the test session"""
    application = create_app(use_lifespan=False)

    def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app):
    """Create test client"""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Factory for bearer headers of a user"""

    def _auth_headers(user) -> dict:
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
