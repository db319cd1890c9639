"""
Tests for user endpoints (/api/users/*).

Tests cover:
- Statistics (status counts, overdue, completion rate, seven-day activity)
- The register → create → complete → stats walkthrough
- Account deletion with its tasks
- Admin-only user listing
"""

import logging
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from tests.conftest import bearer, make_task
from time_utils import utc_now
from users.stats import completion_rate

logger = logging.getLogger(__name__)


# ============== Stats ==============


def test_end_to_end_walkthrough(client: TestClient):
    """Register, create a task, find it as pending, complete it, and see it in stats."""
    registered = client.post(
        "/api/auth/register",
        json={"name": "Alice", "email": "alice@example.com", "password": "Secret123"},
    )
    assert registered.status_code == 201
    headers = bearer(registered.json()["token"])

    created = client.post("/api/tasks", json={"title": "Buy milk"}, headers=headers)
    assert created.status_code == 201
    task = created.json()["task"]
    assert (task["status"], task["priority"]) == ("pending", "medium")

    pending = client.get("/api/tasks", params={"status": "pending"}, headers=headers).json()
    assert [t["id"] for t in pending["tasks"]] == [task["id"]]

    completed = client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=headers)
    assert completed.status_code == 200

    stats = client.get("/api/users/stats", headers=headers)
    assert stats.status_code == 200
    overview = stats.json()["stats"]["overview"]
    assert overview["completedTasks"] == 1
    assert overview["completionRate"] == 100
    assert overview["recentCompletions"] == 1
    logger.info("✓ End-to-end walkthrough")


def test_stats_counts(
    client: TestClient,
    test_db: Session,
    regular_user: models.User,
    user_tasks: list,
    user_auth_headers: dict,
):
    now = utc_now()
    # Overdue: past due and not completed
    make_task(test_db, regular_user, "Overdue", due_date=now - timedelta(days=2))
    # Past due but completed long ago: neither overdue nor recent
    make_task(
        test_db,
        regular_user,
        "Old and done",
        due_date=now - timedelta(days=20),
        status=models.TaskStatus.completed,
        created_at=now - timedelta(days=30),
        completed_at=now - timedelta(days=10),
    )
    make_task(test_db, regular_user, "Due later", due_date=now + timedelta(days=2))

    response = client.get("/api/users/stats", headers=user_auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "User statistics retrieved successfully"
    stats = data["stats"]
    assert stats["tasks"] == {"total": 6, "pending": 3, "in-progress": 1, "completed": 2}
    assert stats["overview"] == {
        "totalTasks": 6,
        "completedTasks": 2,
        "overdueTasks": 1,
        "completionRate": 33,
        "recentTasks": 5,
        "recentCompletions": 1,
    }
    assert stats["user"]["name"] == "Regular User"
    assert stats["user"]["email"] == "user@example.com"
    assert stats["user"]["joinDate"] is not None
    logger.info("✓ Stats counts")


def test_stats_without_tasks(client: TestClient, regular_user: models.User, user_auth_headers: dict):
    overview = client.get("/api/users/stats", headers=user_auth_headers).json()["stats"]["overview"]

    assert overview["totalTasks"] == 0
    assert overview["completionRate"] == 0
    logger.info("✓ Stats with no tasks")


@pytest.mark.parametrize(
    "completed,total,expected",
    [(0, 0, 0), (0, 5, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (5, 5, 100)],
)
def test_completion_rate_rounding(completed: int, total: int, expected: int):
    assert completion_rate(completed, total) == expected


# ============== Me / delete ==============


def test_get_me(client: TestClient, regular_user: models.User, user_auth_headers: dict):
    response = client.get("/api/users/me", headers=user_auth_headers)

    assert response.status_code == 200
    assert response.json()["user"]["id"] == regular_user.id
    assert "passwordHash" not in response.json()["user"]
    logger.info("✓ /me returns profile")


def test_delete_account_removes_user_and_tasks(
    client: TestClient,
    test_db: Session,
    regular_user: models.User,
    user_tasks: list,
    another_user: models.User,
    user_auth_headers: dict,
):
    """Deleting an account removes the user and every owned task, nothing else."""
    user_id = regular_user.id
    make_task(test_db, another_user, "Survivor")

    response = client.delete("/api/users/me", headers=user_auth_headers)

    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert response.json() == {"message": "User account and all associated data deleted successfully"}
    assert "max-age=0" in response.headers.get("set-cookie", "").lower()

    test_db.expire_all()
    assert test_db.query(models.User).filter(models.User.id == user_id).count() == 0
    assert test_db.query(models.Task).filter(models.Task.user_id == user_id).count() == 0
    assert [task.title for task in test_db.query(models.Task).all()] == ["Survivor"]

    after = client.get("/api/users/me", headers=user_auth_headers)
    assert after.status_code == 401
    assert after.json()["error"] == "USER_NOT_FOUND"
    logger.info("✓ Account and tasks deleted")


# ============== Admin ==============


def test_list_users_requires_admin(client: TestClient, regular_user: models.User, user_auth_headers: dict):
    response = client.get("/api/users", headers=user_auth_headers)

    assert response.status_code == 403
    assert response.json()["error"] == "INSUFFICIENT_PERMISSIONS"
    logger.info("✓ Non-admin cannot list users")


def test_admin_lists_users(
    client: TestClient,
    admin_user: models.User,
    regular_user: models.User,
    admin_auth_headers: dict,
):
    response = client.get("/api/users", headers=admin_auth_headers)

    assert response.status_code == 200
    emails = {user["email"] for user in response.json()["users"]}
    assert emails == {"admin@example.com", "user@example.com"}
    logger.info("✓ Admin lists users")
