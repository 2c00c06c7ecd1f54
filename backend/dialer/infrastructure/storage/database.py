"""
Database Connection and Session Management
PostgreSQL in production; SQLite for local development and tests
"""
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from dialer.core.config import get_settings

logger = logging.getLogger(__name__)


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with per-dialect pool settings.

    Skip-locked claiming needs PostgreSQL; SQLite silently omits FOR UPDATE,
    which is acceptable for a single-process dev database.
    """
    settings = get_settings()
    is_sqlite = url.startswith("sqlite")
    kwargs = dict(pool_pre_ping=True, echo=echo)

    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=1800,
        )

    engine = create_engine(url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


def create_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False keeps claimed rows readable after the claim commits
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = create_db_engine(get_settings().database_url, echo=get_settings().db_echo)

SessionLocal = create_session_factory(engine)


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Get database session with automatic commit / rollback

    Usage:
        with get_db() as db:
            db.execute(select(DialerQueueRow))
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def db_health(bind: Optional[Engine] = None) -> dict:
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"ok": True}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"ok": False, "error": str(e)}


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Create tables (development convenience; production uses migrations).
    """
    from dialer.infrastructure.storage.models import Base

    Base.metadata.create_all(bind=bind or engine)
