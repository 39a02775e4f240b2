import logging
from contextlib import contextmanager
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fieldshare.config import settings
from fieldshare.models import Base

logger = logging.getLogger(__name__)


def build_engine(url: Optional[str] = None, **kwargs) -> Engine:
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, future=True, **kwargs)

    if engine.dialect.name == "sqlite":
        # SQLite ignores ON DELETE CASCADE unless asked
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables directly; production schemas go through alembic."""
    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Session scope for workers and scripts: commit on success, rollback on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Dependency Injection
def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
