"""SQLite engine, schema setup and session handling shared by the stores."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from cartwise.config import get_settings
from cartwise.db.models import Base

logger = logging.getLogger(__name__)


class _Database:
    engine: Optional[Engine] = None
    sessions: Optional[sessionmaker[Session]] = None


_db = _Database()


def sqlite_url(database_path: Path) -> str:
    return f"sqlite:///{database_path}"


def _on_connect(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
    # Cart lines reference vault items; SQLite only enforces that with the pragma set.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_schema(engine: Engine) -> None:
    """Create any missing cartwise tables."""

    missing = set(Base.metadata.tables) - set(inspect(engine).get_table_names())
    if not missing:
        return
    Base.metadata.create_all(engine, checkfirst=True)
    logger.info("Created tables: %s", ", ".join(sorted(missing)))


def get_engine(database_path: Path | None = None) -> Engine:
    """Return the process-wide engine, building it on first use."""

    if _db.engine is not None:
        return _db.engine

    path = Path(database_path or get_settings().database_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(sqlite_url(path), connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _on_connect)
    init_schema(engine)

    _db.engine = engine
    _db.sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    logger.debug("Using cart database %s", path)
    return engine


def get_session() -> Session:
    if _db.sessions is None:
        get_engine()
    assert _db.sessions is not None
    return _db.sessions()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on any error."""

    with get_session() as session:
        with session.begin():
            yield session


def reset_repository_state() -> None:
    """Dispose of the cached engine so the next call picks up fresh settings."""

    if _db.engine is not None:
        _db.engine.dispose()
    _db.engine = None
    _db.sessions = None


__all__ = ["get_engine", "get_session", "init_schema", "reset_repository_state", "session_scope", "sqlite_url"]
