"""
Database handle — engine, single-writer lock and transaction boundaries.

Every store operation goes through one of two context managers:

- ``transaction()``: takes the lock and opens a session inside
  ``sessionmaker.begin()``, so all statements commit together or roll
  back together.
- ``read()``: takes the lock and opens a plain session for queries.

The lock is scoped to the Database (one per storage connection), not to a
skill. It is held for one logical read or write and never across a call
to the generation/analysis capability; callers never see it.
"""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.schema import StorageConfig
from .models import Base

logger = structlog.get_logger()

MEMORY_PATH = ":memory:"


def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Enable foreign keys (off by default in SQLite) and WAL on each connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class Database:
    """SQLite database shared by the skill and article stores.

    Args:
        config: Storage configuration. ``path`` may be ``":memory:"``.
    """

    def __init__(self, config: StorageConfig | None = None):
        self.config = config or StorageConfig()
        self.path = str(self.config.path)
        self.log = logger.bind(component="database", path=self.path)

        self.engine = self._create_engine()
        Base.metadata.create_all(self.engine)

        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
        self._lock = threading.Lock()

        self.log.info("database.initialized")

    def _create_engine(self) -> Engine:
        if self.path == MEMORY_PATH:
            # One shared connection, otherwise every checkout sees an empty db
            engine = create_engine(
                "sqlite://",
                echo=self.config.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{self.path}",
                echo=self.config.echo,
                connect_args={"check_same_thread": False},
            )
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Lock, open a session and commit on exit (rollback on error)."""
        with self._lock:
            with self._session_factory.begin() as session:
                yield session

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Lock and open a read session."""
        with self._lock:
            with self._session_factory() as session:
                yield session

    @property
    def locked(self) -> bool:
        """True if the store lock is currently held. Not reentrant."""
        return self._lock.locked()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()
        self.log.debug("database.closed")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Database(path='{self.path}')>"
