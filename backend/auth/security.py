"""
Security utilities for password hashing and bearer token management.

This module provides cryptographic functions for:
- Password hashing using Argon2id (memory-hard, GPU-resistant)
- Issuing and verifying signed, time-limited JWT bearer tokens
"""

import logging
from datetime import timedelta
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from time_utils import utc_now

logger = logging.getLogger(__name__)

# Password hashing configuration using Argon2id
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class TokenError(Exception):
    """Base class for token verification failures."""


class MalformedToken(TokenError):
    """Token cannot be decoded or lacks a subject."""


class InvalidSignature(TokenError):
    """Token was not signed with our secret."""


class TokenExpired(TokenError):
    """Token signature is valid but its expiry has passed."""


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password to hash

    Returns:
        Hashed password string

    Example:
        >>> hashed = hash_password("Secret123")
        >>> verify_password("Secret123", hashed)
        True
    """
    logger.debug("Hashing password")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    logger.debug("Verifying password")
    try:
        is_valid = pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Stored value is not a hash passlib recognizes
        logger.warning("Stored password hash could not be parsed")
        return False
    logger.debug(f"Password verification result: {is_valid}")
    return is_valid


class TokenService:
    """
    Issues and verifies bearer tokens.

    Tokens carry the user id in the ``sub`` claim and expire after
    ``expire_days``. There is no revocation list: expiry is the only
    server-side invalidation.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_days: int = 7):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_days = expire_days

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            expire_days=settings.token_expire_days,
        )

    def issue(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """
        Create a signed token for ``user_id``.

        Args:
            user_id: Id of the user the token identifies
            expires_delta: Optional override of the default lifetime

        Returns:
            Encoded JWT string
        """
        now = utc_now()
        expire = now + (expires_delta if expires_delta is not None else timedelta(days=self.expire_days))
        claims = {"sub": str(user_id), "iat": now, "exp": expire}
        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Token issued for user {user_id}, expires at: {expire}")
        return token

    def verify(self, token: str) -> str:
        """
        Verify a token and return the user id it carries.

        Raises:
            MalformedToken: not a JWT, or no subject claim
            InvalidSignature: signature does not match
            TokenExpired: expiry has passed
        """
        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            logger.info(f"Malformed token: {e}")
            raise MalformedToken(str(e)) from e

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            logger.info("Token expired")
            raise TokenExpired(str(e)) from e
        except JWTError as e:
            logger.info(f"JWT verification failed: {e}")
            raise InvalidSignature(str(e)) from e

        user_id = payload.get("sub")
        if not user_id:
            logger.info("Token payload missing 'sub' claim")
            raise MalformedToken("Token payload missing subject")
        return user_id
