"""
Task query engine.

Every function here is scoped to one owner: callers pass the authenticated
user's id and never see, count or touch another user's tasks. A task id that
exists but belongs to someone else is reported exactly like a missing one.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import asc, case, desc, func, or_
from sqlalchemy.orm import Session

from errors import BadRequestError, ErrorCode, NotFoundError
from models import Task, TaskPriority, TaskStatus
import schemas
from time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_SORT = "-createdAt"
BULK_OPERATIONS = ("delete", "status", "priority")

_PRIORITY_RANK = case(
    (Task.priority == TaskPriority.low, 0),
    (Task.priority == TaskPriority.medium, 1),
    (Task.priority == TaskPriority.high, 2),
    else_=1,
)

SORT_FIELDS = {
    "createdAt": Task.created_at,
    "updatedAt": Task.updated_at,
    "dueDate": Task.due_date,
    "priority": _PRIORITY_RANK,
    "status": Task.status,
    "title": Task.title,
}


@dataclass
class TaskListQuery:
    status: Optional[str] = None
    priority: Optional[str] = None
    search: Optional[str] = None
    page: int = 1
    limit: int = 10
    sort: str = DEFAULT_SORT


@dataclass
class TaskPage:
    tasks: List[Task]
    total: int
    page: int
    limit: int
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict:
        return {
            "current_page": self.page,
            "total_pages": self.total_pages,
            "total_tasks": self.total,
            "limit": self.limit,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_criteria(
    user_id: str,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> list:
    """
    Translate list filters into SQLAlchemy criteria.

    ``status``/``priority`` of None or "all" do not constrain. ``search`` is a
    case-insensitive substring match on title or description.
    """
    criteria = [Task.user_id == user_id]
    if status and status != "all":
        criteria.append(Task.status == TaskStatus(status))
    if priority and priority != "all":
        criteria.append(Task.priority == TaskPriority(priority))
    if search and search.strip():
        pattern = f"%{_escape_like(search.strip())}%"
        criteria.append(
            or_(
                Task.title.ilike(pattern, escape="\\"),
                Task.description.ilike(pattern, escape="\\"),
            )
        )
    return criteria


def parse_sort(sort: Optional[str]) -> list:
    """
    Parse ``"-createdAt,title"`` style sort strings into order clauses.

    Unknown fields are skipped; an empty result falls back to newest first.
    Task id is appended as a tiebreaker so pages never overlap.
    """
    order_clauses = []
    for raw in (sort or DEFAULT_SORT).split(","):
        name = raw.strip()
        descending = name.startswith("-")
        name = name.lstrip("-+")
        column = SORT_FIELDS.get(name)
        if column is None:
            if name:
                logger.debug(f"Ignoring unknown sort field: {name}")
            continue
        order_clauses.append(desc(column) if descending else asc(column))

    if not order_clauses:
        order_clauses.append(desc(Task.created_at))
    order_clauses.append(asc(Task.id))
    return order_clauses


def status_counts(db: Session, criteria: list) -> Dict[str, int]:
    """Per-status counts (plus total) over every task matching ``criteria``."""
    rows = (
        db.query(Task.status, func.count(Task.id))
        .filter(*criteria)
        .group_by(Task.status)
        .all()
    )
    counts = {"total": 0, TaskStatus.pending.value: 0, TaskStatus.in_progress.value: 0, TaskStatus.completed.value: 0}
    for task_status, count in rows:
        counts[TaskStatus(task_status).value] = count
        counts["total"] += count
    return counts


def list_tasks(db: Session, user_id: str, query: TaskListQuery) -> TaskPage:
    """
    Filter, sort and paginate the caller's tasks.

    The stats aggregate covers every task matching the filters, not just the
    returned page.
    """
    logger.debug(
        f"User {user_id} listing tasks: status={query.status}, priority={query.priority}, "
        f"search={query.search}, page={query.page}, limit={query.limit}, sort={query.sort}"
    )
    criteria = build_criteria(user_id, query.status, query.priority, query.search)

    total = db.query(func.count(Task.id)).filter(*criteria).scalar() or 0
    tasks = (
        db.query(Task)
        .filter(*criteria)
        .order_by(*parse_sort(query.sort))
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
        .all()
    )
    stats = status_counts(db, criteria)

    logger.info(f"list_tasks for user {user_id}: returned {len(tasks)} of {total} tasks")
    return TaskPage(tasks=tasks, total=total, page=query.page, limit=query.limit, stats=stats)


def apply_status(task: Task, new_status: TaskStatus) -> bool:
    """
    Move a task to ``new_status``, keeping ``completed``/``completed_at`` in step.

    Every transition is allowed. Entering completed stamps the completion time;
    leaving it clears both fields. Returns False when the status is unchanged.
    """
    new_status = TaskStatus(new_status)
    if task.status == new_status:
        return False
    task.status = new_status
    if new_status == TaskStatus.completed:
        task.completed = True
        task.completed_at = utc_now()
    else:
        task.completed = False
        task.completed_at = None
    return True


def get_task(db: Session, user_id: str, task_id: str) -> Task:
    """
    Fetch one of the caller's tasks.

    Raises:
        NotFoundError: 404 TASK_NOT_FOUND if missing or owned by someone else
    """
    task = db.query(Task).filter(Task.id == task_id, Task.user_id == user_id).first()
    if not task:
        logger.info(f"Task {task_id} not found for user {user_id}")
        raise NotFoundError("Task not found", ErrorCode.TASK_NOT_FOUND)
    return task


def create_task(db: Session, user_id: str, data: schemas.TaskCreate) -> Task:
    task = Task(
        title=data.title,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
        tags=list(data.tags),
        user_id=user_id,
        status=TaskStatus.pending,
        completed=False,
    )
    apply_status(task, data.status)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info(f"Task created successfully: id={task.id} for user {user_id}")
    return task


def update_task(db: Session, user_id: str, task_id: str, patch: schemas.TaskUpdate) -> Task:
    """Apply only the fields present in ``patch``; ``user_id`` is never changed."""
    task = get_task(db, user_id, task_id)
    update_data = patch.model_dump(exclude_unset=True)
    logger.debug(f"User {user_id} updating task {task_id}: fields={list(update_data)}")

    new_status = update_data.pop("status", None)
    for key, value in update_data.items():
        setattr(task, key, value)
    if new_status is not None:
        apply_status(task, new_status)

    db.commit()
    db.refresh(task)
    logger.info(f"Task {task_id} updated successfully")
    return task


def delete_task(db: Session, user_id: str, task_id: str) -> Dict[str, str]:
    task = get_task(db, user_id, task_id)
    deleted = {"id": task.id, "title": task.title}
    db.delete(task)
    db.commit()
    logger.info(f"Task {task_id} deleted by user {user_id}")
    return deleted


def bulk_update(
    db: Session,
    user_id: str,
    task_ids: List[str],
    operation: str,
    data: schemas.BulkData,
) -> int:
    """
    Apply one operation to the caller's tasks among ``task_ids``.

    Ids that don't exist or belong to other users are skipped silently.

    Returns:
        Number of tasks deleted, or whose status/priority actually changed
    """
    if not task_ids:
        raise BadRequestError("Task IDs array is required", ErrorCode.INVALID_TASK_IDS)
    if operation not in BULK_OPERATIONS:
        logger.info(f"Rejected bulk operation: {operation!r}")
        raise BadRequestError("Invalid bulk operation", ErrorCode.INVALID_OPERATION)
    if operation == "status" and data.status is None:
        raise BadRequestError("Status is required for bulk status update", ErrorCode.MISSING_STATUS)
    if operation == "priority" and data.priority is None:
        raise BadRequestError("Priority is required for bulk priority update", ErrorCode.MISSING_PRIORITY)

    unique_ids = list(dict.fromkeys(task_ids))
    tasks = db.query(Task).filter(Task.user_id == user_id, Task.id.in_(unique_ids)).all()
    logger.debug(f"Bulk {operation}: {len(tasks)} of {len(unique_ids)} ids owned by user {user_id}")

    modified = 0
    for task in tasks:
        if operation == "delete":
            db.delete(task)
            modified += 1
        elif operation == "status":
            if apply_status(task, data.status):
                modified += 1
        elif task.priority != data.priority:
            task.priority = data.priority
            modified += 1

    db.commit()
    logger.info(f"Bulk {operation} for user {user_id}: {modified} task(s) affected")
    return modified


def delete_all_for_user(db: Session, user_id: str) -> int:
    """Delete every task the user owns. Does not commit."""
    count = db.query(Task).filter(Task.user_id == user_id).delete(synchronize_session=False)
    logger.debug(f"Deleting {count} task(s) owned by user {user_id}")
    return count
