"""
Query Façade

Public read and aggregate surface. Each call decides whether the deletion
scope applies, captures one reference timestamp, composes the include scope
and hands the resulting context to the RecordStore. The `*_with_deleted`
variants and the `with_deleted=True` flag skip the scope entirely.
"""

import logging
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from paranoid.includes import compose_scope
from paranoid.registry import registry
from paranoid.scope import ScopeContext, ScopedCall, current_time, with_scope
from paranoid.store import ReadOptions, RecordStore, as_tuple

logger = logging.getLogger(__name__)


def _read_kind(kind: Any) -> Tuple[str, Optional[list]]:
    if kind in ("first", "all"):
        return kind, None
    if isinstance(kind, (list, tuple, set, frozenset)):
        return "ids", list(kind)
    return "one", [kind]


def _run_scoped(entity: type, include: Any, with_deleted: bool, inner: ScopedCall) -> Any:
    """
    Execute `inner` inside the scope required for `entity`.

    The root predicate wraps the include scope, and both use the same
    reference timestamp.
    """
    timestamp = None if with_deleted else current_time()
    call = inner
    if include is not None:
        call = compose_scope(entity, include, call, timestamp)
    if timestamp is not None and registry.is_paranoid(entity):
        return with_scope(ScopeContext(), entity, timestamp, call)
    return call(ScopeContext())


# ============================================================================
# Finders
# ============================================================================


def find(
    db: Session,
    entity: type,
    kind: Any = "all",
    *,
    where: Any = None,
    order_by: Any = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    include: Any = None,
    with_deleted: bool = False,
) -> Any:
    """
    Find records, excluding soft-deleted rows unless `with_deleted` is set

    Args:
        db: Database session
        entity: Mapped class to query
        kind: "first", "all", an identifier or a list of identifiers
        where: SQL expression or list of expressions
        order_by: Column or list of columns
        limit: Maximum rows for "all"
        offset: Rows to skip for "first" and "all"
        include: Relationships to eager-load (name, list or mapping)
        with_deleted: Bypass the deletion scope

    Returns:
        A record or None for "first", a list for "all" and identifier lists,
        a record for a single identifier

    Raises:
        RecordNotFound: an identifier matched no visible row
    """
    read_kind, ids = _read_kind(kind)
    options = ReadOptions.build(where=where, order_by=order_by, limit=limit, offset=offset)
    store = RecordStore(db)

    def execute(context: ScopeContext) -> Any:
        return store.execute_read(entity, read_kind, context, options, ids=ids)

    return _run_scoped(entity, include, with_deleted, execute)


def find_with_deleted(db: Session, entity: type, kind: Any = "all", **options) -> Any:
    """Find records regardless of their deletion state"""
    options["with_deleted"] = True
    return find(db, entity, kind, **options)


def find_only_deleted(db: Session, entity: type, kind: Any = "all", *, where: Any = None, **options) -> Any:
    """Find soft-deleted records only"""
    column = registry.deleted_column(entity)
    conditions = as_tuple(where) + (column.isnot(None),)
    options["with_deleted"] = True
    return find(db, entity, kind, where=conditions, **options)


# ============================================================================
# Existence and aggregates
# ============================================================================


def exists(
    db: Session,
    entity: type,
    ident: Any = None,
    *,
    where: Any = None,
    include: Any = None,
    with_deleted: bool = False,
) -> bool:
    """Check whether a visible row exists, optionally by primary key"""
    options = ReadOptions.build(where=where)
    store = RecordStore(db)

    def execute(context: ScopeContext) -> bool:
        return store.execute_exists(entity, context, options, ident=ident)

    return _run_scoped(entity, include, with_deleted, execute)


def exists_with_deleted(db: Session, entity: type, ident: Any = None, **options) -> bool:
    options["with_deleted"] = True
    return exists(db, entity, ident, **options)


def calculate(
    db: Session,
    entity: type,
    operation: str,
    column: Any = None,
    *,
    distinct: bool = False,
    where: Any = None,
    include: Any = None,
    with_deleted: bool = False,
) -> Any:
    """
    Run an aggregate over visible rows

    Args:
        operation: count, sum, average/avg, minimum/min or maximum/max
        column: Attribute name or column expression (optional for count)
        distinct: Aggregate distinct values only

    Returns:
        The aggregate value; count and sum of no rows are 0
    """
    options = ReadOptions.build(where=where)
    store = RecordStore(db)

    def execute(context: ScopeContext) -> Any:
        return store.execute_aggregate(entity, operation, column, context, options, distinct=distinct)

    return _run_scoped(entity, include, with_deleted, execute)


def calculate_with_deleted(db: Session, entity: type, operation: str, column: Any = None, **options) -> Any:
    options["with_deleted"] = True
    return calculate(db, entity, operation, column, **options)


def count(db: Session, entity: type, column: Any = None, **options) -> int:
    """Count visible rows"""
    return calculate(db, entity, "count", column, **options)


def count_with_deleted(db: Session, entity: type, column: Any = None, **options) -> int:
    options["with_deleted"] = True
    return calculate(db, entity, "count", column, **options)


# ============================================================================
# Bulk deletion
# ============================================================================


def delete_all(db: Session, entity: type, where: Any = None) -> int:
    """
    Soft delete every row matching `where`

    Rows are kept and their deletion attribute is set to the current time.
    Entities without soft delete are removed physically.

    Returns:
        Number of rows matched
    """
    if not registry.is_paranoid(entity):
        return delete_all_hard(db, entity, where)

    column = registry.deleted_column(entity)
    store = RecordStore(db)
    with db.begin_nested():
        rowcount = store.execute_bulk_update(entity, as_tuple(where), {column: current_time()})
    logger.info(f"Soft deleted {rowcount} {entity.__name__} row(s)")
    return rowcount


def delete_all_hard(db: Session, entity: type, where: Any = None) -> int:
    """Physically delete every row matching `where`"""
    store = RecordStore(db)
    with db.begin_nested():
        rowcount = store.execute_bulk_delete(entity, as_tuple(where))
    logger.info(f"Permanently deleted {rowcount} {entity.__name__} row(s)")
    return rowcount
