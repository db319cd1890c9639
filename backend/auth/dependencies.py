"""
FastAPI dependencies for authentication and authorization.

This module provides dependency functions that can be used in route handlers to:
- Extract and validate the current user from a bearer token or the auth cookie
- Resolve an optional user for routes that personalize but don't require identity
- Enforce the admin role
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from auth.security import InvalidSignature, MalformedToken, TokenExpired, TokenService
from config import Settings, get_settings
from database import get_db
from errors import AuthError, ErrorCode, ForbiddenError
from models import User, UserRole

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme; missing headers are handled below so the cookie can be tried
security = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    cookie_name: str,
) -> Optional[str]:
    """Bearer header first, then the http-only cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name) or None


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the authenticated user or fail with 401.

    Raises:
        AuthError: NO_TOKEN, INVALID_TOKEN, TOKEN_EXPIRED or USER_NOT_FOUND

    Example:
        @router.get("/api/protected")
        def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    token = extract_token(request, credentials, settings.cookie_name)
    if not token:
        logger.info("No authentication credentials provided")
        raise AuthError("Access token required", ErrorCode.NO_TOKEN)

    try:
        user_id = tokens.verify(token)
    except TokenExpired:
        raise AuthError("Token expired", ErrorCode.TOKEN_EXPIRED)
    except (MalformedToken, InvalidSignature):
        raise AuthError("Invalid token", ErrorCode.INVALID_TOKEN)

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise AuthError("Invalid token - user not found", ErrorCode.USER_NOT_FOUND)

    logger.debug(f"User authenticated: {user.email}")
    return user


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """
    Get the current user if authenticated, or None if not.

    Any failure (no token, bad token, deleted user) yields an anonymous caller.
    """
    try:
        return get_current_user(request, credentials, settings, tokens, db)
    except HTTPException:
        logger.debug("Optional user authentication failed, returning None")
        return None


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """Dependency for admin-only endpoints."""
    if current_user.role != UserRole.admin:
        logger.info(f"Access denied: user {current_user.email} has role '{current_user.role.value}', admin required")
        raise ForbiddenError("Admin access required", ErrorCode.INSUFFICIENT_PERMISSIONS)
    return current_user
