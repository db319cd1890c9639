"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login/logout (bearer token plus http-only cookie)
- Profile read/update and password change
- Token validation for clients restoring a session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, get_optional_user, get_token_service
from auth.security import TokenService, hash_password, verify_password
from config import Settings, get_settings
from database import get_db
from errors import AuthError, BadRequestError, ConflictError, ErrorCode, NotFoundError
import models
import schemas
from time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _email_taken(db: Session, email: str) -> bool:
    return db.query(models.User.id).filter(models.User.email == email).first() is not None


def set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        path="/",  # Must match path in clear_auth_cookie for logout to work
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain,
        max_age=settings.cookie_max_age,
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    # Browser requires matching domain/path/secure/samesite to delete a cookie
    response.delete_cookie(
        key=settings.cookie_name,
        path="/",
        domain=settings.cookie_domain,
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: schemas.RegisterRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
):
    """
    Register a new user account.

    Returns the public profile and a token; the token is also set as an
    http-only cookie.

    Raises:
        ConflictError: 409 USER_EXISTS if the email is already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    if _email_taken(db, request.email):
        logger.info(f"Registration failed: email already exists: {request.email}")
        raise ConflictError("User already exists with this email", ErrorCode.USER_EXISTS)

    new_user = models.User(
        name=request.name,
        email=request.email,
        password_hash=hash_password(request.password),
        role=models.UserRole.user,
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent registration won the unique email index
        db.rollback()
        logger.info(f"Registration lost race on unique email: {request.email}")
        raise ConflictError("User already exists with this email", ErrorCode.USER_EXISTS)
    db.refresh(new_user)

    token = tokens.issue(new_user.id)
    set_auth_cookie(response, token, settings)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return {"message": "User registered successfully", "token": token, "user": new_user}


@router.post("/login", response_model=schemas.AuthResponse)
def login(
    request: schemas.LoginRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
):
    """
    Login with email and password.

    Unknown email and wrong password produce the same 401 so callers cannot
    tell which addresses are registered.
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = db.query(models.User).filter(models.User.email == request.email).first()
    if not user or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed for email: {request.email}")
        raise AuthError("Invalid credentials", ErrorCode.INVALID_CREDENTIALS)

    user.last_login = utc_now()
    db.commit()
    db.refresh(user)

    token = tokens.issue(user.id)
    set_auth_cookie(response, token, settings)

    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return {"message": "Login successful", "token": token, "user": user}


@router.get("/profile", response_model=schemas.UserResponse)
def get_profile(current_user: models.User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    logger.debug(f"Fetching profile for: {current_user.email}")
    return {"message": "Profile retrieved successfully", "user": current_user}


@router.put("/profile", response_model=schemas.UserResponse)
def update_profile(
    profile_update: schemas.ProfileUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update name, bio and/or profile picture. Omitted fields are left alone.

    Raises:
        NotFoundError: 404 USER_NOT_FOUND if the account was removed meanwhile
    """
    user_id = current_user.id
    update_data = profile_update.model_dump(exclude_unset=True)
    # A null name is treated as "not provided"
    if update_data.get("name") is None:
        update_data.pop("name", None)
    for key in ("bio", "profile_picture"):
        if key in update_data and update_data[key] is None:
            update_data[key] = ""
    logger.debug(f"User {user_id} updating profile fields: {list(update_data)}")

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)

    for key, value in update_data.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)

    logger.info(f"Profile updated: {user.email} (ID: {user.id})")
    return {"message": "Profile updated successfully", "user": user}


@router.put("/change-password", response_model=schemas.MessageResponse)
def change_password(
    request: schemas.ChangePasswordRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the authenticated user's password.

    Raises:
        BadRequestError: 400 INVALID_CURRENT_PASSWORD if the current password is wrong
    """
    if not verify_password(request.current_password, current_user.password_hash):
        logger.info(f"Password change rejected for {current_user.email}: wrong current password")
        raise BadRequestError("Current password is incorrect", ErrorCode.INVALID_CURRENT_PASSWORD)

    current_user.password_hash = hash_password(request.new_password)
    db.commit()

    logger.info(f"Password changed for user: {current_user.email}")
    return {"message": "Password changed successfully"}


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(response: Response, settings: Settings = Depends(get_settings)):
    """
    Clear the auth cookie.

    Does not require authentication, so users can always log out even in a
    broken auth state. A token captured elsewhere stays valid until it expires.
    """
    clear_auth_cookie(response, settings)
    logger.info("User logged out")
    return {"message": "Logged out successfully"}


@router.get("/validate", response_model=schemas.ValidateResponse)
def validate_token(current_user: Optional[models.User] = Depends(get_optional_user)):
    """Report whether the presented token (header or cookie) resolves to a user."""
    if current_user is None:
        return {"message": "No valid session", "valid": False, "user": None}
    return {"message": "Token is valid", "valid": True, "user": current_user}
