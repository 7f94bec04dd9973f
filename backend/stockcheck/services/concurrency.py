# Overview: Transaction boundary and retry helpers shared by every mutating service operation.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ..extensions import db

_DEPTH_KEY = "unit_of_work_depth"
_AFTER_COMMIT_KEY = "after_commit_callbacks"


@contextmanager
def unit_of_work():
    """
    Scoped transaction: commit when the outermost block exits cleanly,
    rollback on any exception (which is re-raised).

    Nested blocks join the outer transaction, so helpers may open one
    without committing work the caller has not finished.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
            session.info.pop(_AFTER_COMMIT_KEY, None)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock/deadlock failures.

    The failed transaction is rolled back before the next attempt; func must
    therefore be a whole unit of work.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def call_after_commit(callback) -> None:
    """Run callback once the current transaction commits; a rollback discards it."""
    db.session.info.setdefault(_AFTER_COMMIT_KEY, []).append(callback)


@event.listens_for(Session, "after_commit")
def _run_after_commit(session):
    for callback in session.info.pop(_AFTER_COMMIT_KEY, []):
        callback()
