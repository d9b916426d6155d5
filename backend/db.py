from __future__ import annotations

import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

AFTER_COMMIT_KEY = "after_commit"


def build_engine(database_url: str) -> Engine:
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database.
        return create_engine(
            database_url,
            future=True,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, future=True, echo=False, pool_pre_ping=True)


class Database:
    """Engine, session factory and the transaction boundary shared by all services.

    ``session_scope`` is the only way state is mutated. The outermost scope on a
    thread holds a process wide lock and commits or rolls back as a whole; scopes
    opened while one is active join it, so a coordinator callback and the raffle
    logic it triggers succeed or fail together.
    """

    def __init__(self, database_url: str) -> None:
        self.engine = build_engine(database_url)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False, future=True
        )
        self._lock = threading.RLock()
        self._active: ContextVar[Optional[Session]] = ContextVar("active_session", default=None)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        active = self._active.get()
        if active is not None:
            yield active
            return

        with self._lock:
            session = self._session_factory()
            token = self._active.set(session)
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                self._active.reset(token)
                callbacks = session.info.pop(AFTER_COMMIT_KEY, [])
                session.close()
        for callback in callbacks:
            callback()

    @staticmethod
    def after_commit(session: Session, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost scope owning ``session`` commits."""
        session.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)
