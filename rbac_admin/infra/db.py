from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, create_engine

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+psycopg://rbac:rbac@db:5432/rbac_admin",
)

engine = create_engine(DATABASE_URL, pool_pre_ping=True)


def get_engine() -> Engine:
    return engine


@contextmanager
def session_scope(session: Session | None = None) -> Iterator[Session]:
    """Yield a unit of work.

    A caller-supplied session is yielded untouched: the caller owns the
    transaction and decides when to commit. Otherwise a fresh session is
    opened and committed when the block exits cleanly; an exception leaves
    it uncommitted and closing it rolls everything back.
    """
    if session is not None:
        yield session
        return
    with Session(get_engine(), expire_on_commit=False) as owned:
        yield owned
        owned.commit()


def check_db_ready() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
