"""
Record Store Adapter

Boundary between the soft-delete layer and SQLAlchemy. Every statement the
layer issues goes through RecordStore, which turns a ScopeContext into
query criteria:

- predicates on the queried entity become WHERE conditions
- predicates on associated entities become loader criteria, so they reach
  eager loads and relationship joins
- include paths become selectinload chains (reads) or outer joins (aggregates)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_
from sqlalchemy import distinct as sa_distinct
from sqlalchemy import func
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Query, Session, aliased, selectinload, with_loader_criteria

from paranoid.callbacks import run_validation
from paranoid.exceptions import ConfigurationError, RecordNotFound
from paranoid.scope import ScopeContext

logger = logging.getLogger(__name__)

AGGREGATES = {
    "count": func.count,
    "sum": func.sum,
    "average": func.avg,
    "avg": func.avg,
    "minimum": func.min,
    "min": func.min,
    "maximum": func.max,
    "max": func.max,
}


def _mapper(entity: type):
    try:
        return sa_inspect(entity)
    except NoInspectionAvailable:
        raise ConfigurationError(f"{entity!r} is not a mapped class") from None


def resolve_association(entity: type, name: str) -> type:
    """Target class of the relationship `name` declared on `entity`."""
    relationships = _mapper(entity).relationships
    if name not in relationships:
        raise ConfigurationError(f"{entity.__name__} has no relationship named '{name}'")
    return relationships[name].mapper.class_


def primary_key(entity: type):
    """Mapped attribute of a single-column primary key."""
    mapper = _mapper(entity)
    if len(mapper.primary_key) != 1:
        raise ConfigurationError(f"{entity.__name__} must have a single-column primary key to be found by id")
    return getattr(entity, mapper.get_property_by_column(mapper.primary_key[0]).key)


def coerce_id(pk: Any, value: Any) -> Any:
    """Convert a requested identifier to the primary key's Python type when possible."""
    try:
        python_type = pk.type.python_type
    except NotImplementedError:
        return value
    if isinstance(value, python_type):
        return value
    try:
        return python_type(value)
    except (TypeError, ValueError):
        return value


def as_tuple(value: Any) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


@dataclass(frozen=True)
class ReadOptions:
    """Pass-through options understood by the underlying query."""

    where: Tuple[Any, ...] = ()
    order_by: Tuple[Any, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None

    @classmethod
    def build(cls, where=None, order_by=None, limit=None, offset=None) -> "ReadOptions":
        return cls(where=as_tuple(where), order_by=as_tuple(order_by), limit=limit, offset=offset)


class RecordStore:
    """Executes reads, aggregates and writes against a Session"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Scope application
    # ------------------------------------------------------------------

    def _apply_scope(self, query: Query, entity: type, context: ScopeContext) -> Query:
        targets = context.association_targets
        for scoped in context.scoped_entities:
            condition = and_(*context.conditions_for(scoped))
            if scoped is entity:
                query = query.filter(condition)
                if scoped not in targets:
                    continue
            query = query.options(with_loader_criteria(scoped, condition, include_aliases=True))
        return query

    def _eager_load(self, query: Query, context: ScopeContext) -> Query:
        for path in context.paths:
            option = selectinload(path[0].attribute)
            for step in path[1:]:
                option = option.selectinload(step.attribute)
            query = query.options(option)
        return query

    def _join_paths(self, query: Query, entity: type, context: ScopeContext) -> Query:
        present = {entity}
        joined: Dict[tuple, Any] = {}
        for path in context.paths:
            current: Any = entity
            for index, step in enumerate(path):
                key = path[: index + 1]
                if key in joined:
                    current = joined[key]
                    continue
                attribute = getattr(current, step.name)
                if step.target in present:
                    target = aliased(step.target)
                    query = query.outerjoin(attribute.of_type(target))
                else:
                    target = step.target
                    query = query.outerjoin(attribute)
                    present.add(target)
                joined[key] = target
                current = target
        return query

    def _filtered(self, query: Query, entity: type, context: ScopeContext, options: ReadOptions) -> Query:
        if options.where:
            query = query.filter(*options.where)
        return self._apply_scope(query, entity, context)

    def _matching_ids(self, entity: type, context: ScopeContext, options: ReadOptions):
        """Uncorrelated SELECT of root primary keys passing the joins, conditions and scope."""
        query = self.db.query(primary_key(entity)).select_from(entity)
        query = self._join_paths(query, entity, context)
        query = self._filtered(query, entity, context, options)
        return query.statement.correlate(None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def execute_read(
        self,
        entity: type,
        kind: str,
        context: ScopeContext,
        options: ReadOptions,
        ids: Optional[Sequence[Any]] = None,
    ) -> Any:
        """
        Load records of `entity`.

        Args:
            kind: "first", "all", "one" (single id) or "ids"
            ids: Identifiers for the "one" and "ids" kinds

        Raises:
            RecordNotFound: an identifier matched no row
        """
        query = self._filtered(self.db.query(entity), entity, context, options)
        query = self._eager_load(query, context)
        if options.order_by:
            query = query.order_by(*options.order_by)

        if kind in ("one", "ids"):
            return self._read_ids(entity, query, list(ids or ()), single=kind == "one")

        if options.offset is not None:
            query = query.offset(options.offset)
        if kind == "first":
            logger.debug(f"Reading first {entity.__name__}")
            return query.first()
        if kind == "all":
            if options.limit is not None:
                query = query.limit(options.limit)
            logger.debug(f"Reading all {entity.__name__}")
            return query.all()
        raise ValueError(f"Unknown find kind: {kind!r}")

    def _read_ids(self, entity: type, query: Query, ids: List[Any], single: bool) -> Any:
        pk = primary_key(entity)
        wanted = list(dict.fromkeys(coerce_id(pk, value) for value in ids))
        rows = query.filter(pk.in_(wanted)).all() if wanted else []
        by_id = {getattr(row, pk.key): row for row in rows}
        if any(value not in by_id for value in wanted):
            raise RecordNotFound(entity, wanted, found=len(by_id))
        if single:
            return by_id[wanted[0]]
        return [by_id[i] for i in wanted]

    def execute_exists(
        self,
        entity: type,
        context: ScopeContext,
        options: ReadOptions,
        ident: Any = None,
    ) -> bool:
        query = self.db.query(primary_key(entity) if ident is not None else entity)
        query = query.select_from(entity)
        query = self._join_paths(query, entity, context)
        query = self._filtered(query, entity, context, options)
        if ident is not None:
            query = query.filter(primary_key(entity) == ident)
        return bool(self.db.query(query.exists()).scalar())

    def execute_aggregate(
        self,
        entity: type,
        operation: str,
        column: Any,
        context: ScopeContext,
        options: ReadOptions,
        distinct: bool = False,
    ) -> Any:
        """Run COUNT/SUM/AVG/MIN/MAX over `entity` honouring the scope."""
        try:
            aggregate = AGGREGATES[operation]
        except KeyError:
            raise ValueError(f"Unknown aggregate operation: {operation!r}") from None

        if column is None:
            if operation != "count":
                raise ValueError(f"{operation} requires a column")
            expression = primary_key(entity) if distinct else None
        else:
            expression = getattr(entity, column) if isinstance(column, str) else column

        if expression is None:
            selected = aggregate()
        elif distinct:
            selected = aggregate(sa_distinct(expression))
        else:
            selected = aggregate(expression)

        query = self.db.query(selected).select_from(entity)
        if context.paths:
            # joined collections repeat root rows, so aggregate over the matching roots only
            query = query.filter(primary_key(entity).in_(self._matching_ids(entity, context, options)))
        else:
            query = self._filtered(query, entity, context, options)
        result = query.scalar()
        logger.debug(f"{operation} over {entity.__name__} returned {result}")
        if result is None and operation in ("count", "sum"):
            return 0
        return result

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def execute_bulk_update(self, entity: type, where: Sequence[Any], assignments: Dict[Any, Any]) -> int:
        return self.db.query(entity).filter(*where).update(assignments, synchronize_session="auto")

    def execute_bulk_delete(self, entity: type, where: Sequence[Any]) -> int:
        return self.db.query(entity).filter(*where).delete(synchronize_session="auto")

    def execute_delete(self, record: Any) -> None:
        self.db.delete(record)
        self.db.flush()

    def persist(self, record: Any) -> None:
        """Validate and flush a record; failures propagate unchanged."""
        run_validation(record)
        self.db.add(record)
        self.db.flush()
