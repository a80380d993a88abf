# codguard/database.py
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings

def _normalize_db_url(url: str) -> str:
    # psycopg v3 for Postgres; anything else is passed through
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url

def engine_options(url: str) -> Dict[str, Any]:
    opts: Dict[str, Any] = {"echo": settings.SQL_ECHO}
    if url.startswith("sqlite"):
        # API threads and Celery tasks share one SQLite connection in dev
        opts["connect_args"] = {"check_same_thread": False}
    else:
        opts.update(pool_pre_ping=True, pool_size=settings.DB_POOL_SIZE, pool_recycle=1800)
    return opts

_engine: Optional[Engine] = None  # built on first use; importing models never connects
_SessionLocal: Optional[sessionmaker] = None

def get_engine() -> Engine:
    global _engine
    if _engine is None:
        url = _normalize_db_url(settings.DATABASE_URL)
        _engine = create_engine(url, **engine_options(url))
    return _engine

def get_sessionmaker() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=True)
    return _SessionLocal

def set_sessionmaker(factory: Optional[sessionmaker]) -> None:
    """Swap the session factory used by workers (tests bind it to SQLite)."""
    global _SessionLocal
    _SessionLocal = factory

class Base(DeclarativeBase):
    pass

@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One session per unit of work. Services commit at their own checkpoints;
    whatever is still open when an exception escapes is rolled back here.
    """
    db = get_sessionmaker()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_db() -> Iterator[Session]:
    with session_scope() as db:
        yield db
