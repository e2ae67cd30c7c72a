from contextlib import contextmanager
from typing import Iterator, Optional
from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and session factory.

    Opened once at application startup and closed at shutdown; the handle
    is passed to whoever needs a session instead of being imported as
    module state.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> None:
        if self.is_open:
            return

        engine_kwargs = {"echo": self.echo}
        if self.url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every session sees an empty db
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(self.url, **engine_kwargs)
        if self.url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )
        logger.info(f"Database opened ({self.engine.url.get_backend_name()})")

    def close(self) -> None:
        if not self.is_open:
            return
        self.engine.dispose()
        self.engine = None
        self._session_factory = None
        logger.info("Database closed")

    def create_all(self) -> None:
        # Import models so every table is registered on Base.metadata
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        if not self.is_open:
            raise RuntimeError("Database is not open")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self.session()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency yielding a session from the app's database handle"""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
