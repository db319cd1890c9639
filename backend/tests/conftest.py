"""
Test configuration and fixtures for TaskFlow API tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users and tasks
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Dict, Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from database import Base, get_db
from main import create_app
import models
from auth.security import TokenService, hash_password
from time_utils import utc_now

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

USER_PASSWORD = "Secret123"

TEST_SETTINGS = Settings(
    environment="test",
    database_url="sqlite://",
    jwt_secret_key="test-secret-key-not-for-production",
    rate_limit_enabled=False,
    log_level="WARNING",
)


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def app(test_db: Session):
    """Application built from the test settings, sharing the test session."""
    application = create_app(TEST_SETTINGS)

    def override_get_db():
        yield test_db

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """
    Create FastAPI test client with database dependency override.
    """
    with TestClient(app) as test_client:
        yield test_client


def make_user(db: Session, name: str, email: str, role: models.UserRole = models.UserRole.user) -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash=hash_password(USER_PASSWORD),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created {role.value} user with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def regular_user(test_db: Session) -> models.User:
    """
    Create a regular user for testing.
    """
    return make_user(test_db, "Regular User", "user@example.com")


@pytest.fixture(scope="function")
def another_user(test_db: Session) -> models.User:
    """
    Create another user for testing multi-user scenarios.
    """
    return make_user(test_db, "Another User", "another@example.com")


@pytest.fixture(scope="function")
def admin_user(test_db: Session) -> models.User:
    """
    Create an admin user for testing.
    """
    return make_user(test_db, "Admin User", "admin@example.com", role=models.UserRole.admin)


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override (negative for an expired token)

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    return TokenService.from_settings(TEST_SETTINGS).issue(user.id, expires_delta)


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def user_auth_headers(regular_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers for regular user.
    """
    return bearer(create_auth_token(regular_user))


@pytest.fixture(scope="function")
def another_user_auth_headers(another_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers for another user.
    """
    return bearer(create_auth_token(another_user))


@pytest.fixture(scope="function")
def admin_auth_headers(admin_user: models.User) -> Dict[str, str]:
    """
    Create authorization headers with admin token.
    """
    return bearer(create_auth_token(admin_user))


def make_task(db: Session, user: models.User, title: str, **fields) -> models.Task:
    """Insert a task directly, bypassing request validation (e.g. for past due dates)."""
    task_status = fields.pop("status", models.TaskStatus.pending)
    task = models.Task(
        title=title,
        user_id=user.id,
        status=task_status,
        completed=task_status == models.TaskStatus.completed,
        completed_at=fields.pop("completed_at", utc_now() if task_status == models.TaskStatus.completed else None),
        **fields,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture(scope="function")
def user_tasks(test_db: Session, regular_user: models.User) -> List[models.Task]:
    """
    Three tasks for the regular user: one per status.
    """
    logger.debug("Creating tasks for regular user")
    tasks = [
        make_task(test_db, regular_user, "Write report", priority=models.TaskPriority.high),
        make_task(
            test_db,
            regular_user,
            "Review pull request",
            description="Backend changes",
            status=models.TaskStatus.in_progress,
        ),
        make_task(
            test_db,
            regular_user,
            "Buy groceries",
            priority=models.TaskPriority.low,
            status=models.TaskStatus.completed,
        ),
    ]
    logger.info(f"Created {len(tasks)} tasks for user {regular_user.id}")
    return tasks
