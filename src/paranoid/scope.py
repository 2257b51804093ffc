"""
Predicate Injector

Builds the deletion predicate for paranoid entities and threads it through a
call chain as an immutable ScopeContext. A scope only exists for the duration
of the call it is handed to: nothing is stored on the session, the class or
the module, so nested and concurrent calls cannot see each other's filters.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Query

from paranoid import config
from paranoid.registry import registry

logger = logging.getLogger(__name__)


def current_time() -> datetime:
    """Reference time for deletion timestamps, honouring PARANOID_DEFAULT_TIMEZONE"""
    if config.DEFAULT_TIMEZONE == "local":
        return datetime.now()
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_predicate(entity: type, timestamp: datetime):
    """
    Condition matching rows that are visible at `timestamp`.

    Rows deleted after the reference time are still visible, so a row removed
    while a read is in flight does not vanish from it halfway through.
    """
    column = registry.deleted_column(entity)
    return or_(column.is_(None), column > timestamp)


@dataclass(frozen=True)
class AssociationStep:
    """One hop of an eager-load path."""

    owner: type
    name: str
    target: type

    @property
    def attribute(self):
        return getattr(self.owner, self.name)


@dataclass(frozen=True)
class ScopeCriterion:
    entity: type
    timestamp: datetime
    condition: Any


@dataclass(frozen=True)
class ScopeContext:
    """
    Filter state for a single logical query.

    Attributes:
        criteria: Deletion predicates, at most one per (entity, timestamp)
        paths: Eager-load paths named by the caller's include specification
    """

    criteria: Tuple[ScopeCriterion, ...] = ()
    paths: Tuple[Tuple[AssociationStep, ...], ...] = ()

    def merge(self, entity: type, condition: Any, timestamp: datetime) -> "ScopeContext":
        """Return a context that additionally requires `condition` for `entity`."""
        for criterion in self.criteria:
            if criterion.entity is entity and criterion.timestamp == timestamp:
                return self
        return ScopeContext(
            criteria=self.criteria + (ScopeCriterion(entity, timestamp, condition),),
            paths=self.paths,
        )

    def including(self, path: Tuple[AssociationStep, ...]) -> "ScopeContext":
        if not path or path in self.paths:
            return self
        return ScopeContext(criteria=self.criteria, paths=self.paths + (path,))

    def conditions_for(self, entity: type) -> list:
        return [c.condition for c in self.criteria if c.entity is entity]

    @property
    def scoped_entities(self) -> list:
        seen = []
        for criterion in self.criteria:
            if criterion.entity not in seen:
                seen.append(criterion.entity)
        return seen

    @property
    def association_targets(self) -> set:
        return {step.target for path in self.paths for step in path}


ScopedCall = Callable[[ScopeContext], Any]


def with_scope(context: ScopeContext, entity: type, timestamp: datetime, inner: ScopedCall) -> Any:
    """Run `inner` with the deletion predicate of `entity` AND-merged into `context`."""
    scoped = context.merge(entity, build_predicate(entity, timestamp), timestamp)
    return inner(scoped)


def pass_through(context: ScopeContext, inner: ScopedCall) -> Any:
    """Run `inner` with no additional condition."""
    return inner(context)


def filter_deleted(query: Query, entity: type, timestamp: Optional[datetime] = None) -> Query:
    """Filter out soft-deleted records from query"""
    if not registry.is_paranoid(entity):
        return query
    return query.filter(build_predicate(entity, timestamp or current_time()))


def only_deleted(query: Query, entity: type) -> Query:
    """Filter to show only soft-deleted records"""
    return query.filter(registry.deleted_column(entity).isnot(None))
