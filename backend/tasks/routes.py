"""Task API endpoints. Every route requires authentication and is scoped to the caller."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user
from database import get_db
import models
import schemas
from tasks import queries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

StatusFilter = Literal["all", "pending", "in-progress", "completed"]
PriorityFilter = Literal["all", "low", "medium", "high"]

# Keeps the row offset well inside a 64-bit integer
MAX_PAGE = 1_000_000


@router.get("", response_model=schemas.TaskListResponse)
def list_tasks(
    status: Optional[StatusFilter] = Query(None),
    priority: Optional[PriorityFilter] = Query(None),
    search: Optional[str] = Query(None, max_length=100, description="Substring match on title or description"),
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(10, ge=1, le=100),
    sort: str = Query(queries.DEFAULT_SORT, description="Comma-separated fields, prefix with - for descending"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's tasks with filters, sorting, pagination and status counts."""
    result = queries.list_tasks(
        db,
        current_user.id,
        queries.TaskListQuery(
            status=status, priority=priority, search=search, page=page, limit=limit, sort=sort
        ),
    )
    return {
        "message": "Tasks retrieved successfully",
        "tasks": result.tasks,
        "pagination": result.pagination(),
        "stats": result.stats,
    }


@router.post("", response_model=schemas.TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a task owned by the caller."""
    logger.info(f"User {current_user.id} creating task: {task.title}")
    db_task = queries.create_task(db, current_user.id, task)
    return {"message": "Task created successfully", "task": db_task}


@router.post("/bulk", response_model=schemas.BulkResponse)
def bulk_update_tasks(
    bulk: schemas.BulkRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete, re-status or re-prioritize several tasks at once.

    Ids the caller does not own are skipped; ``modifiedCount`` reports how many
    tasks were actually affected.
    """
    logger.info(f"User {current_user.id} bulk {bulk.operation} on {len(bulk.task_ids)} task(s)")
    modified = queries.bulk_update(db, current_user.id, bulk.task_ids, bulk.operation, bulk.data)
    return {
        "message": f"Bulk {bulk.operation} operation completed",
        "modified_count": modified,
        "operation": bulk.operation,
        "task_ids": bulk.task_ids,
    }


@router.get("/{task_id}", response_model=schemas.TaskResponse)
def get_task(
    task_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get one of the caller's tasks."""
    logger.debug(f"User {current_user.id} requesting task {task_id}")
    return {"message": "Task retrieved successfully", "task": queries.get_task(db, current_user.id, task_id)}


@router.put("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: str,
    task_update: schemas.TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partially update one of the caller's tasks."""
    task = queries.update_task(db, current_user.id, task_id, task_update)
    return {"message": "Task updated successfully", "task": task}


@router.delete("/{task_id}", response_model=schemas.TaskDeleteResponse)
def delete_task(
    task_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete one of the caller's tasks."""
    deleted = queries.delete_task(db, current_user.id, task_id)
    return {"message": "Task deleted successfully", "task": deleted}
