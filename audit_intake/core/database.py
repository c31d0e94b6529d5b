"""Database engine, session management and reconnect handling."""

import logging
import time
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from audit_intake.core.config import Settings, settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Owns the SQLAlchemy engine and session factory for the process.

    Sessions are acquired with `session()` (or the `get_db` dependency) and always
    released. On connection failures callers use `reconnect()` / `ensure_connected()`
    instead of rebuilding module-level engines.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        reconnect_attempts: int = 3,
        **engine_kwargs: Any,
    ) -> None:
        self.url = url
        self.reconnect_attempts = reconnect_attempts
        kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": echo}
        kwargs.update(engine_kwargs)
        self.engine: Engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "DatabaseManager":
        pool_kwargs: dict[str, Any] = {}
        if not cfg.DATABASE_URL.startswith("sqlite"):
            pool_kwargs = {
                "pool_size": cfg.DB_POOL_SIZE,
                "max_overflow": cfg.DB_MAX_OVERFLOW,
                "pool_timeout": cfg.DB_POOL_TIMEOUT_SEC,
            }
        return cls(
            cfg.DATABASE_URL,
            echo=cfg.DEBUG,
            reconnect_attempts=cfg.DB_RECONNECT_ATTEMPTS,
            **pool_kwargs,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Acquire a session and release it when the block exits."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def check_connected(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def reconnect(self) -> None:
        """Drop every pooled connection; the next checkout opens a fresh one."""
        logger.warning("Disposing connection pool for %s", self.engine.url.render_as_string(hide_password=True))
        self.engine.dispose()

    def ensure_connected(self, backoff_sec: float = 1.0) -> None:
        """
        Verify connectivity, reconnecting between attempts.
        Raises the last OperationalError when every attempt fails.
        """
        for attempt in range(1, self.reconnect_attempts + 1):
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                return
            except OperationalError as e:
                logger.warning(
                    "Database connection attempt %s/%s failed: %s",
                    attempt,
                    self.reconnect_attempts,
                    e,
                )
                self.reconnect()
                if attempt == self.reconnect_attempts:
                    raise
                time.sleep(backoff_sec * attempt)


db_manager = DatabaseManager.from_settings(settings)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields a DB session and closes it when done."""
    with db_manager.session() as db:
        yield db


def get_engine() -> Engine:
    """Dependency returning the engine, used for live schema introspection."""
    return db_manager.engine


def get_db_manager() -> DatabaseManager:
    return db_manager
