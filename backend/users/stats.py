"""
Per-user statistics and account removal.
"""

import logging
import math

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Task, TaskStatus, User
from tasks.queries import delete_all_for_user, status_counts
from time_utils import days_ago, utc_now

logger = logging.getLogger(__name__)

RECENT_DAYS = 7


def completion_rate(completed: int, total: int) -> int:
    """Whole-number percentage, halves rounded up; 0 when there are no tasks."""
    if total <= 0:
        return 0
    return int(math.floor(completed * 100 / total + 0.5))


def get_stats(db: Session, user: User) -> dict:
    """
    Aggregate statistics over all of ``user``'s tasks.

    Overdue means a due date in the past on a task that is not completed.
    Recent counts cover the last seven days.
    """
    logger.debug(f"Computing stats for user {user.id}")
    now = utc_now()
    since = days_ago(RECENT_DAYS)

    def count(*criteria) -> int:
        return db.query(func.count(Task.id)).filter(Task.user_id == user.id, *criteria).scalar() or 0

    by_status = status_counts(db, [Task.user_id == user.id])
    total_tasks = by_status["total"]
    completed_tasks = by_status[TaskStatus.completed.value]

    overview = {
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "overdue_tasks": count(
            Task.due_date.isnot(None),
            Task.due_date < now,
            Task.status != TaskStatus.completed,
        ),
        "completion_rate": completion_rate(completed_tasks, total_tasks),
        "recent_tasks": count(Task.created_at >= since),
        "recent_completions": count(Task.completed_at.isnot(None), Task.completed_at >= since),
    }

    return {
        "tasks": by_status,
        "overview": overview,
        "user": {
            "name": user.name,
            "email": user.email,
            "join_date": user.created_at,
            "last_active": now,
        },
    }


def delete_account(db: Session, user: User) -> int:
    """
    Delete the user's tasks and then the user.

    Both deletes are committed together, so a failure leaves neither applied.

    Returns:
        Number of tasks removed
    """
    user_id = user.id
    email = user.email
    try:
        removed = delete_all_for_user(db, user_id)
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Account deletion failed for user {user_id}; nothing was removed")
        raise

    logger.info(f"Account deleted: {email} (ID: {user_id}), {removed} task(s) removed")
    return removed
