"""
Association Scope Composer

Turns an include specification into a single scoped call. An include
specification is a relationship name, a list of specifications, or a mapping
from a relationship name to a nested specification:

    "category"
    ["category", "tags"]
    {"category": {"parent": None}, "tags": None}

Every named relationship is eager-loaded, and every paranoid target adds its
deletion predicate to the scope. All predicates are conjunctive, so the order
in which the include is folded never changes the result.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple, Union

from paranoid.registry import registry
from paranoid.scope import AssociationStep, ScopeContext, ScopedCall, pass_through, with_scope
from paranoid.store import resolve_association

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Leaf:
    name: str


@dataclass(frozen=True)
class Sequence:
    items: Tuple["IncludeNode", ...]


@dataclass(frozen=True)
class Keyed:
    entries: Tuple[Tuple[str, "IncludeNode"], ...]


IncludeNode = Union[Leaf, Sequence, Keyed]

ScopeWrapper = Callable[[ScopedCall], ScopedCall]

EMPTY = Sequence(())


def parse_include(spec: Any) -> IncludeNode:
    """
    Normalize a user supplied include specification.

    Raises:
        TypeError: spec is not a name, a list/tuple or a mapping
    """
    if isinstance(spec, (Leaf, Sequence, Keyed)):
        return spec
    if spec is None:
        return EMPTY
    if isinstance(spec, str):
        return Leaf(spec)
    if isinstance(spec, Mapping):
        entries = []
        for key, nested in spec.items():
            if not isinstance(key, str):
                raise TypeError(f"Include keys must be relationship names, got {key!r}")
            entries.append((key, parse_include(nested)))
        return Keyed(tuple(entries))
    if isinstance(spec, (list, tuple)):
        return Sequence(tuple(parse_include(item) for item in spec))
    raise TypeError(f"Unsupported include specification: {spec!r}")


def _step(owner: type, name: str) -> AssociationStep:
    return AssociationStep(owner=owner, name=name, target=resolve_association(owner, name))


def _fold(wrappers: List[ScopeWrapper]) -> ScopeWrapper:
    def wrap(inner: ScopedCall) -> ScopedCall:
        composed = inner
        for wrapper in wrappers:
            composed = wrapper(composed)
        return composed

    return wrap


def _leaf_wrapper(
    step: AssociationStep, timestamp: Optional[datetime], prefix: Tuple[AssociationStep, ...]
) -> ScopeWrapper:
    path = prefix + (step,)
    paranoid = timestamp is not None and registry.is_paranoid(step.target)

    def wrap(inner: ScopedCall) -> ScopedCall:
        def scoped(context: ScopeContext) -> Any:
            context = context.including(path)
            if paranoid:
                return with_scope(context, step.target, timestamp, inner)
            return pass_through(context, inner)

        return scoped

    return wrap


def scope_wrapper(
    owner: type,
    node: IncludeNode,
    timestamp: Optional[datetime],
    prefix: Tuple[AssociationStep, ...] = (),
) -> ScopeWrapper:
    """Build the wrapper for `node`, resolving relationships from `owner`."""
    if isinstance(node, Leaf):
        return _leaf_wrapper(_step(owner, node.name), timestamp, prefix)

    if isinstance(node, Sequence):
        return _fold([scope_wrapper(owner, item, timestamp, prefix) for item in node.items])

    if isinstance(node, Keyed):
        wrappers = []
        for name, nested in node.entries:
            step = _step(owner, name)
            nested_wrapper = scope_wrapper(step.target, nested, timestamp, prefix + (step,))
            key_wrapper = _leaf_wrapper(step, timestamp, prefix)
            wrappers.append(lambda inner, k=key_wrapper, n=nested_wrapper: k(n(inner)))
        return _fold(wrappers)

    raise TypeError(f"Unsupported include node: {node!r}")


def compose_scope(root: type, spec: Any, inner: ScopedCall, timestamp: Optional[datetime]) -> ScopedCall:
    """
    Wrap `inner` in the scopes required by the include specification.

    Args:
        root: Entity the query starts from
        spec: Include specification (name, list or mapping)
        inner: Call that executes the query with the final context
        timestamp: Reference time shared by every predicate of the call, or
            None to eager-load the associations without filtering them

    Returns:
        A callable taking the starting ScopeContext
    """
    node = parse_include(spec)
    logger.debug(f"Composing include scope for {root.__name__}: {node}")
    return scope_wrapper(root, node, timestamp)(inner)
