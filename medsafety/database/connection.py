"""
Database Configuration
Supports SQLite (dev/test) and PostgreSQL (production)
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from medsafety.config import settings
from medsafety.database.models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Database connection manager with support for multiple backends"""

    def __init__(self):
        self.engine = None
        self.SessionLocal = None
        self._initialized = False

    def init_db(self, database_url: str = None):
        """Initialize database connection"""
        if self._initialized:
            return

        if database_url is None:
            database_url = settings.DATABASE_URL

        # Handle PostgreSQL URL format from some cloud providers
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        if database_url.startswith("sqlite"):
            self._ensure_sqlite_dir(database_url)
            engine_args = {"connect_args": {"check_same_thread": False}, "echo": settings.SQL_DEBUG}
            # In-memory databases live and die with their single connection
            if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
                engine_args["poolclass"] = StaticPool
            self.engine = create_engine(database_url, **engine_args)

            # Enable foreign keys for SQLite
            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            self.engine = create_engine(
                database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=settings.SQL_DEBUG
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine
        )

        Base.metadata.create_all(bind=self.engine)

        self._initialized = True
        logger.info(f"Database initialized: {database_url.split('@')[-1]}")

    @staticmethod
    def _ensure_sqlite_dir(database_url: str):
        if "///" not in database_url:
            return
        path = database_url.split("///", 1)[1]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    def get_session(self) -> Session:
        """Get a new database session"""
        if not self._initialized:
            self.init_db()
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations"""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """True if the database answers a trivial query"""
        if not self._initialized:
            return False
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database ping failed: {e}")
            return False
        return True

    def close(self):
        """Close database connection"""
        if self.engine:
            self.engine.dispose()
            self._initialized = False


# Global database manager instance
db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions"""
    db = db_manager.get_session()
    try:
        yield db
    finally:
        db.close()


def init_database(database_url: str = None):
    """Initialize the database"""
    db_manager.init_db(database_url)
