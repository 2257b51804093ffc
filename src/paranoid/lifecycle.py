"""
Lifecycle Controller

Per-record transitions between Active, SoftDeleted and Purged:

    destroy()       Active -> SoftDeleted   direct UPDATE, no hooks, record frozen
    recover()       SoftDeleted -> Active   attribute cleared and flushed
    destroy_hard()  any -> Purged           hooks + DELETE inside one savepoint

Entities without soft delete go straight to destroy_hard() from destroy().
"""

import logging
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import DetachedInstanceError

from paranoid.callbacks import run_callbacks
from paranoid.registry import registry
from paranoid.scope import current_time
from paranoid.store import RecordStore

logger = logging.getLogger(__name__)

FROZEN_FLAG = "_paranoid_frozen"


def freeze(record: Any) -> None:
    object.__setattr__(record, FROZEN_FLAG, True)


def thaw(record: Any) -> None:
    object.__setattr__(record, FROZEN_FLAG, False)


def is_frozen(record: Any) -> bool:
    return bool(record.__dict__.get(FROZEN_FLAG, False))


def _require_session(record: Any) -> Session:
    db = object_session(record)
    if db is None:
        raise DetachedInstanceError(f"{type(record).__name__} instance is not bound to a Session")
    return db


def is_deleted(record: Any) -> bool:
    """True when the record's deletion attribute is set"""
    entity = type(record)
    if not registry.is_paranoid(entity):
        return False
    column = registry.deleted_column(entity)
    return getattr(record, column.key) is not None


def destroy(record: Any) -> bool:
    """
    Soft delete a record.

    The deletion attribute is written with a direct UPDATE, so no hooks or
    validations run. Records that were never flushed are removed from their
    session and frozen; nothing reaches the database.

    Raises:
        DetachedInstanceError: the record has a row but no session
    """
    entity = type(record)
    if not registry.is_paranoid(entity):
        return destroy_hard(record)

    column = registry.deleted_column(entity)
    timestamp = current_time()
    state = sa_inspect(record)
    if state.has_identity:
        db = _require_session(record)
        mapper = state.mapper
        identity = mapper.primary_key_from_instance(record)
        conditions = [pk_column == value for pk_column, value in zip(mapper.primary_key, identity)]
        with db.begin_nested():
            RecordStore(db).execute_bulk_update(entity, conditions, {column: timestamp})
        set_committed_value(record, column.key, timestamp)
        logger.info(f"Soft deleted {entity.__name__} {identity}")
    elif state.pending:
        state.session.expunge(record)

    freeze(record)
    return True


def destroy_hard(record: Any) -> bool:
    """
    Permanently delete a record.

    Runs before_destroy, removes the row and runs after_destroy inside a
    single savepoint. Any exception rolls all of it back and propagates.

    Returns:
        False when a before_destroy hook aborted, True otherwise
    """
    entity = type(record)
    state = sa_inspect(record)
    db = state.session

    if db is None:
        if state.has_identity:
            raise DetachedInstanceError(f"{entity.__name__} instance is not bound to a Session")
        if not run_callbacks(record, "before_destroy"):
            return False
        run_callbacks(record, "after_destroy")
        freeze(record)
        return True

    with db.begin_nested():
        if not run_callbacks(record, "before_destroy"):
            logger.info(f"Destroy of {entity.__name__} aborted by before_destroy hook")
            return False
        if state.pending:
            db.expunge(record)
        else:
            RecordStore(db).execute_delete(record)
        run_callbacks(record, "after_destroy")

    logger.info(f"Permanently deleted {entity.__name__} {state.identity}")
    freeze(record)
    return True


def recover(record: Any) -> bool:
    """
    Clear the deletion attribute and persist the record.

    Raises:
        ConfigurationError: the entity is not paranoid
        RecordInvalid: a validation hook rejected the record
    """
    entity = type(record)
    column = registry.deleted_column(entity)
    db = _require_session(record)

    thaw(record)
    with db.begin_nested():
        setattr(record, column.key, None)
        RecordStore(db).persist(record)
    logger.info(f"Recovered {entity.__name__} {sa_inspect(record).identity}")
    return True


def reload(record: Any) -> Any:
    """Refresh a record from the database, lifting any freeze."""
    db = _require_session(record)
    db.refresh(record)
    thaw(record)
    return record
