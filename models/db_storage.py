from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from models.base_model import Base


class DBStorage:
    """
    Owns the engine and a thread-scoped session.

    One instance is built at process start (see api.create_app) and handed to
    the services that need it. Reads use get_session(); writes go through
    transaction().
    """

    def __init__(self, database_url: str, echo: bool = False):
        """Initialize engine for the given database URL"""
        self.__engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        self.__session = None

        if self.__engine.url.get_backend_name() == "sqlite":
            # Enable SQLite foreign keys (needed for ON DELETE CASCADE)
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

    def reload(self):
        """Create tables and start session"""
        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a unit of work atomically: commit when the block exits cleanly,
        roll back (and re-raise) on any exception.
        """
        session = self.__session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    def close(self):
        """Remove session (for API teardown)"""
        if self.__session is not None:
            self.__session.remove()

    def dispose(self):
        """Release pooled connections"""
        self.close()
        self.__engine.dispose()

    # expose the SQLAlchemy session for advanced querying (joins, filters, etc.)
    def get_session(self):
        return self.__session
