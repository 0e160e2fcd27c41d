# Overview: Transaction boundary and retry helpers shared by every workflow service.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageUnavailable
from ..extensions import db

# Session.info keys
_WROTE_KEY = "clinicpos.wrote"
_RETRY_DEPTH_KEY = "clinicpos.in_retry"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Operations that must stay correct on SQLite also use a conditional UPDATE.
    """
    return query.with_for_update()


@event.listens_for(Session, "after_flush")
def _mark_flushed(session, flush_context):
    session.info[_WROTE_KEY] = True


@event.listens_for(Session, "do_orm_execute")
def _mark_bulk_write(orm_execute_state):
    if orm_execute_state.statement.is_dml:
        orm_execute_state.session.info[_WROTE_KEY] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_write_mark(session, transaction):
    if transaction.parent is None:
        session.info.pop(_WROTE_KEY, None)


def has_uncommitted_writes() -> bool:
    """True when the current transaction already holds writes, flushed or pending."""
    session = db.session
    return bool(session.info.get(_WROTE_KEY) or session.new or session.dirty or session.deleted)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, unreachable store) and
    StaleDataError (optimistic locking conflicts). Once attempts are exhausted
    the failure surfaces as StorageUnavailable so callers can retry later.

    A retry rolls back the session, so it only happens when the operation is
    the first write of the caller's unit of work. If earlier writes exist the
    failure surfaces as StorageUnavailable at once and unit_of_work() discards
    the whole unit. Nested calls defer to the outermost one.
    """
    session = db.session
    if session.info.get(_RETRY_DEPTH_KEY):
        return func()

    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        prior_writes = has_uncommitted_writes()
        session.info[_RETRY_DEPTH_KEY] = True
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            current_app.logger.warning(
                "Concurrency conflict on attempt %s/%s: %s", attempt + 1, attempts, exc
            )
            if prior_writes:
                raise StorageUnavailable(
                    "Storage conflict after earlier writes in this unit of work, retry the whole operation",
                    {"attempts": attempt + 1},
                ) from exc
            db.session.rollback()
            if attempt >= attempts - 1:
                raise StorageUnavailable(
                    "Storage unavailable or conflicting, retry later",
                    {"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        finally:
            session.info.pop(_RETRY_DEPTH_KEY, None)


@contextmanager
def unit_of_work():
    """
    Scoped transaction boundary acquired by the caller of a workflow operation.

    Commits when the block exits normally and rolls back on every exception
    path, so a failed conversion or transfer never leaves partial writes.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise StorageUnavailable("Storage unavailable or conflicting, retry later") from exc
    except BaseException:
        db.session.rollback()
        raise
