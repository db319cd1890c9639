"""User account endpoints: profile alias, statistics, account deletion and admin listing."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from auth.dependencies import get_current_admin, get_current_user
from auth.routes import clear_auth_cookie
from config import Settings, get_settings
from database import get_db
import models
import schemas
from users import stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=schemas.UserListResponse)
def list_users(
    current_user: models.User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """List all users (admin only)."""
    logger.debug(f"Admin {current_user.id} listing all users")
    users = db.query(models.User).order_by(models.User.created_at.desc(), models.User.id).all()
    return {"message": "Users retrieved successfully", "users": users}


@router.get("/me", response_model=schemas.UserResponse)
def get_me(current_user: models.User = Depends(get_current_user)):
    """Current user's profile (same payload as GET /api/auth/profile)."""
    return {"message": "User profile retrieved successfully", "user": current_user}


@router.get("/stats", response_model=schemas.UserStatsResponse)
def get_user_stats(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Task counts, overdue tasks, completion rate and seven-day activity."""
    return {
        "message": "User statistics retrieved successfully",
        "stats": stats.get_stats(db, current_user),
    }


@router.delete("/me", response_model=schemas.MessageResponse)
def delete_me(
    response: Response,
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """Delete the caller's account and every task they own."""
    logger.info(f"User {current_user.id} deleting their account")
    stats.delete_account(db, current_user)
    clear_auth_cookie(response, settings)
    return {"message": "User account and all associated data deleted successfully"}
