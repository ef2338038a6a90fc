# Overview: Transaction scope and row-locking helpers shared by every mutating service.

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable

from sqlalchemy import text

from ..extensions import db

_DEPTH_KEY = "atomic_depth"
_AFTER_COMMIT_KEY = "atomic_after_commit"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, atomic() opens the transaction with BEGIN IMMEDIATE instead,
    which serializes writers for the whole database.
    """
    return query.with_for_update()


def _begin_immediate_if_sqlite() -> None:
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if raw is not None and not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic():
    """
    Run the enclosed block as exactly one database transaction.

    - Commits when the block exits normally.
    - Rolls back on ANY exception, including KeyboardInterrupt and generator
      close (client disconnect / cancellation), then re-raises.
    - Nested use joins the outermost transaction; only the outermost block
      commits or rolls back.
    - Callbacks registered with after_commit() run only once the outermost
      commit succeeded, and are dropped on rollback.

    No retries: a lock conflict surfaces to the caller.
    """
    info = db.session.info
    depth = info.get(_DEPTH_KEY, 0)
    if depth:
        info[_DEPTH_KEY] = depth + 1
        try:
            yield db.session
        finally:
            info[_DEPTH_KEY] -= 1
        return

    info[_DEPTH_KEY] = 1
    info[_AFTER_COMMIT_KEY] = []
    try:
        _begin_immediate_if_sqlite()
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        info[_AFTER_COMMIT_KEY] = []
        raise
    finally:
        info[_DEPTH_KEY] = 0

    callbacks = info.pop(_AFTER_COMMIT_KEY, [])
    for callback in callbacks:
        callback()


def after_commit(callback: Callable[[], None]) -> None:
    """
    Defer a side effect until the current atomic() block commits.

    Outside of atomic() the callback runs immediately.
    """
    info = db.session.info
    if info.get(_DEPTH_KEY, 0):
        info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)
    else:
        callback()
