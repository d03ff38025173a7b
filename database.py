"""
Database access for the lesson API.

Two kinds of callers share one engine: HTTP requests, which get a session
per request through `get_db`, and work that outlives a request (content
generation threads, debounced progress saves), which opens its own
`session_scope()`.
"""

from contextlib import contextmanager
from typing import Generator
from sqlalchemy import create_engine, text, Engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from config import get_settings
import logging

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Lazily built engine and session factory for the lesson store."""

    def __init__(self, database_url: str | None = None):
        self.settings = get_settings()
        self.database_url = database_url or str(self.settings.database_url)
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            # Rows read by a generation thread stay usable after its commit
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def _create_engine(self) -> Engine:
        echo = self.settings.log_level.upper() == "DEBUG"
        logger.info(f"Connecting lesson store: {mask_password(self.database_url)}")

        if self.database_url.startswith("sqlite"):
            # Generation threads and request threads share the connection
            return create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        return create_engine(
            self.database_url,
            poolclass=QueuePool,
            pool_size=self.settings.db_pool_size,
            max_overflow=self.settings.db_max_overflow,
            pool_timeout=self.settings.db_pool_timeout,
            pool_pre_ping=True,
            echo=echo,
        )

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Session for work outside a request: commit on success, roll back and
        re-raise on failure.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Lesson store transaction rolled back: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Lesson store unreachable: {e}")
            return False

    def close(self):
        """Dispose of pooled connections. Called on shutdown."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None


def mask_password(url: str) -> str:
    return make_url(url).render_as_string(hide_password=True)


_db_manager: DatabaseManager | None = None


def get_db_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    session = get_db_manager().session_factory()
    try:
        yield session
    finally:
        session.close()


def reset_db_manager():
    """Drop the global manager (tests switch databases with this)."""
    global _db_manager
    if _db_manager:
        _db_manager.close()
    _db_manager = None
