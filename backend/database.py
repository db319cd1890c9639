"""
Database handle and per-request sessions.

A ``Database`` owns the SQLAlchemy engine and session factory. It is created
when the application starts, stored on ``app.state.db`` and disposed on
shutdown. Route handlers receive a session through the ``get_db`` dependency.
"""

import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Engine plus session factory with an explicit lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        engine_kwargs = {"echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            # In-memory SQLite only lives as long as its single connection
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.url = url
        self.engine = create_engine(url, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.debug(f"Database engine created for {self.engine.url.render_as_string(hide_password=True)}")

    def create_all(self) -> None:
        """Create missing tables."""
        # Import here so every model is registered on Base.metadata
        import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ensured")

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database engine disposed")


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Yield one session per request.

    The session is rolled back if the handler raises and always closed.
    """
    db = request.app.state.db.session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
