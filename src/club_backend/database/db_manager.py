"""
Database Manager for the Club Record Store
===========================================
Handles database connection, tab provisioning, and session management.

Features:
- SQLite database shared by the API workers
- Tabs created on first use, like a spreadsheet that grows missing sheets
- Key/value settings helpers
- Connection reuse for concurrent requests
"""

import os
import logging
from pathlib import Path
from typing import Optional, Generator, Dict, Type
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import Base, Setting, TABS

# Configure logging
logger = logging.getLogger(__name__)

# Database file path (overridable for deployments and tests)
DATABASE_PATH = Path(os.environ.get(
    "CLUB_DATABASE_PATH", Path(__file__).parent / "club_records.db"
))


class DatabaseManager:
    """
    Manages database connections and provides session context.

    Usage:
        db = DatabaseManager()
        Roster = db.get_tab("Roster")
        with db.get_session() as session:
            names = [r.name for r in session.query(Roster).all()]
    """

    def __init__(self, db_path: Optional[Path] = None, echo: bool = False):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file. Defaults to club_records.db
            echo: If True, log all SQL statements (useful for debugging)
        """
        self.db_path = Path(db_path) if db_path else DATABASE_PATH
        self.echo = echo
        self.engine = None
        self.SessionLocal = None
        self._provisioned: set = set()
        self._initialized = False

    def initialize(self) -> bool:
        """
        Initialize the database connection.

        Tabs are not created here; each one is provisioned the first time
        it is requested through get_tab().

        Returns:
            True if initialization successful, False otherwise
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            # check_same_thread=False needed for async/multi-threaded access
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=self.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )

            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")  # Better concurrent access
                cursor.close()

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine
            )

            existing = set(inspect(self.engine).get_table_names())
            self._provisioned = {
                tab for tab, model in TABS.items() if model.__tablename__ in existing
            }
            logger.info(f"Database initialized at: {self.db_path} ({len(self._provisioned)} tabs present)")

            self._initialized = True
            return True

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            return False

    def get_tab(self, name: str) -> Type[Base]:
        """
        Return the model for a tab, creating its table if missing.

        Args:
            name: Tab name, e.g. "Check-ins"

        Raises:
            KeyError: if the tab name is not known
        """
        model = TABS[name]
        if name not in self._provisioned:
            if not self._initialized:
                self.initialize()
            model.__table__.create(bind=self.engine, checkfirst=True)
            self._provisioned.add(name)
            logger.info(f"Provisioned tab '{name}' with headers {list(model.HEADERS)}")
        return model

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.

        Usage:
            with db.get_session() as session:
                # do database operations
                session.commit()

        Yields:
            SQLAlchemy Session object
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def get_setting(self, key: str, default: str = None) -> Optional[str]:
        """
        Get a setting value by key.

        Args:
            key: Setting key name
            default: Default value if key not found

        Returns:
            Setting value as string
        """
        model = self.get_tab(Setting.TAB)
        with self.get_session() as session:
            setting = session.query(model).filter_by(key=key).first()
            return setting.value if setting else default

    def set_setting(self, key: str, value: str):
        """
        Insert or update a setting.

        Args:
            key: Setting key name
            value: Setting value
        """
        model = self.get_tab(Setting.TAB)
        with self.get_session() as session:
            setting = session.query(model).filter_by(key=key).first()
            if setting:
                setting.value = value
            else:
                session.add(model(key=key, value=value))
            session.commit()
            logger.info(f"Setting updated: {key}={value}")

    def get_stats(self) -> dict:
        """
        Get database statistics.

        Returns:
            Dictionary with per-tab row counts and status info
        """
        rows: Dict[str, int] = {}
        with self.get_session() as session:
            for tab in sorted(self._provisioned):
                rows[tab] = session.query(TABS[tab]).count()

        return {
            "database_path": str(self.db_path),
            "tabs": rows,
            "initialized": self._initialized
        }

    def close(self):
        """Close database connection."""
        if self.engine:
            self.engine.dispose()
            logger.info("Database connection closed")


# Global singleton instance
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """
    Get the global database manager instance.
    Creates and initializes if not already done.

    Returns:
        DatabaseManager singleton instance
    """
    global _db_manager

    if _db_manager is None:
        _db_manager = DatabaseManager()
        _db_manager.initialize()

    return _db_manager

