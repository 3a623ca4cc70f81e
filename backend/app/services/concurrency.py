# Overview: Transaction and locking helpers shared by the ledger write paths.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction.

    On SQLite this takes the RESERVED lock up front (BEGIN IMMEDIATE) so
    concurrent writers queue on the busy timeout instead of failing a
    SHARED -> RESERVED upgrade halfway through.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func, *, name: str = "ledger operation"):
    """
    Execute func as one all-or-nothing transaction.

    Commits when func returns, rolls back on any exception. Driver lock
    failures and optimistic-lock failures surface as
    ConcurrencyConflictError; nothing is retried here.
    """
    try:
        begin_write()
        result = func()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        logger.warning("%s aborted by concurrent writer: %s", name, exc)
        raise ConcurrencyConflictError(
            f"{name} conflicted with a concurrent update; resubmit with fresh data",
            details={"operation": name},
        ) from exc
    except Exception:
        db.session.rollback()
        raise


def require_one_row(result, *, name: str, details: dict | None = None) -> None:
    """Treat a conditional UPDATE that matched no row as a lost race."""
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"{name} matched no row; another writer changed it first",
            details=details or {},
        )


def _is_memory_sqlite(engine) -> bool:
    database = engine.url.database
    return not database or database == ":memory:" or "mode=memory" in str(engine.url)


@contextmanager
def snapshot_session():
    """
    Yield a session for multi-query reads that must see one snapshot.

    On server databases this is a dedicated REPEATABLE READ session that
    never takes write locks. On file-backed SQLite it is a dedicated
    connection inside a deferred BEGIN; in WAL mode that read transaction
    keeps one snapshot from its first SELECT and never blocks writers. An
    in-memory SQLite database is private to its connection, so reads run
    on the request session.
    """
    engine = db.engine
    if engine.dialect.name == "sqlite":
        if _is_memory_sqlite(engine):
            yield db.session
            return

        with engine.connect() as conn:
            conn.exec_driver_sql("BEGIN")
            try:
                with Session(bind=conn) as session:
                    yield session
            finally:
                conn.rollback()
        return

    with engine.connect() as conn:
        conn = conn.execution_options(isolation_level="REPEATABLE READ")
        with Session(bind=conn) as session:
            try:
                yield session
            finally:
                session.rollback()
