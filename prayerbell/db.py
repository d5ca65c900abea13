"""
SQLAlchemy engine, session, and base. One Database per process, passed to
the stores that need it.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DB_PATH = Path.home() / ".prayerbell" / "prayerbell.db"


def resolve_db_url(config_data: Optional[dict] = None) -> str:
    """database.url from config, else a SQLite file under ~/.prayerbell."""
    db_config = (config_data or {}).get("database") or {}
    db_url = db_config.get("url")
    if db_url:
        return db_url
    path = db_config.get("path")
    path = Path(path).expanduser().resolve() if path else DEFAULT_DB_PATH
    return f"sqlite:///{path}"


class Database:
    """Owns the engine and session factory; create once, dispose at shutdown."""

    def __init__(self, db_url: str, echo: bool = False):
        url = make_url(db_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self.url = db_url
        self.engine = create_engine(db_url, echo=echo, future=True)
        self._session_factory = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def create_all(self) -> None:
        # Import models so tables are registered with Base
        from prayerbell import models as _models  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.info(f"Database initialized: {self.url.split('?')[0]}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Context manager for a single DB session. Commits on success, rolls back on error."""
        session = self._session_factory()
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
