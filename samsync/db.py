from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from samsync.settings import settings

def make_engine(url: str | None = None, timeout: int | None = None) -> Engine:
    """Build an engine whose connection waits are bounded by ``timeout`` seconds."""
    url = url or settings.DATABASE_URL
    timeout = timeout or settings.DB_TIMEOUT_SECONDS
    if url.startswith("sqlite"):
        # sqlite busy timeout; the scheduler touches the file from worker threads
        return create_engine(
            url,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
    return create_engine(url, pool_pre_ping=True, pool_timeout=timeout)

engine = make_engine()
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

@contextmanager
def session_scope(factory=None) -> Iterator[Session]:
    """Session that commits on success and rolls back on any error."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
