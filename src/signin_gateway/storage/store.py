"""
Local Store for the Sign-in Gateway
====================================
Opens the kiosk's SQLite file and hands out sessions.

The foreground gateway and the background sync worker are separate
processes; they coordinate only through this file. Every operation runs in
its own short transaction, and the busy timeout lets one process wait out
the other's write lock instead of failing.
"""

import logging
from pathlib import Path
from typing import Optional, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from .models import Base
from ..config import QUEUE_DB_PATH

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


class StorageError(Exception):
    """Base class for local storage failures."""


class StorageUnavailableError(StorageError):
    """Local durable storage could not be opened, or stayed locked past the busy timeout."""


class LocalStore:
    """
    Manages the local database connection.

    Usage:
        store = LocalStore()
        with store.get_session() as session:
            session.query(PendingCheckin).count()
    """

    def __init__(self, db_path: Optional[Path] = None, echo: bool = False):
        self.db_path = Path(db_path) if db_path else QUEUE_DB_PATH
        self.echo = echo
        self.engine = None
        self.SessionLocal = None
        self._initialized = False

    def initialize(self):
        """
        Open the database file and create tables.

        Raises:
            StorageUnavailableError: if the file or its directory cannot be used
        """
        if self._initialized:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=self.echo,
                connect_args={"check_same_thread": False}
            )

            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
                cursor.close()

            Base.metadata.create_all(bind=engine)
        except (OSError, SQLAlchemyError) as e:
            logger.error(f"Local storage unavailable at {self.db_path}: {e}")
            raise StorageUnavailableError(str(e)) from e

        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self._initialized = True
        logger.info(f"Local storage opened at: {self.db_path}")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a session with automatic rollback on error.

        Raises:
            StorageUnavailableError: if the store cannot be opened or is locked
        """
        self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except OperationalError as e:
            session.rollback()
            logger.error(f"Local storage unavailable: {e}")
            raise StorageUnavailableError(str(e)) from e
        except Exception as e:
            session.rollback()
            logger.error(f"Local storage session error: {e}")
            raise
        finally:
            session.close()

    def close(self):
        if self.engine:
            self.engine.dispose()
            self.engine = None
            self._initialized = False
            logger.info("Local storage closed")
