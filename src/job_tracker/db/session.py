"""Engine and session management."""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from job_tracker.config import settings
from job_tracker.db.tables import Base
from job_tracker.utils.logging import get_logger

logger = get_logger(__name__)


def create_database_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, sharing a single connection for in-memory SQLite."""
    parsed = make_url(url)
    kwargs = {"echo": echo}

    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool

    return create_engine(url, **kwargs)


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.database_url
        self.engine = create_database_engine(
            self.url, echo=settings.database_echo if echo is None else echo
        )
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ensured", url=self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
