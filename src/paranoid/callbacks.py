"""
Destroy Hooks

Before/after destroy hooks come from two places: methods of the same name
defined on the model, and listeners registered with `listen`. Listeners
registered on a class also fire for its subclasses.

A before hook returning False halts the chain and aborts the destroy. Return
values of after hooks are ignored.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

HOOK_NAMES = ("before_destroy", "after_destroy")

_listeners: Dict[type, Dict[str, List[Callable[[Any], Any]]]] = defaultdict(lambda: defaultdict(list))
_listeners_lock = threading.Lock()


def listen(entity: type, name: str, fn: Callable[[Any], Any]) -> None:
    """Register `fn(record)` to run for `name` on `entity` and its subclasses."""
    if name not in HOOK_NAMES:
        raise ValueError(f"Unknown hook {name!r}, expected one of {HOOK_NAMES}")
    with _listeners_lock:
        _listeners[entity][name].append(fn)


def remove_listeners(entity: type) -> None:
    """Drop every listener registered directly on `entity`."""
    with _listeners_lock:
        _listeners.pop(entity, None)


def _hooks_for(record: Any, name: str) -> List[Callable[[], Any]]:
    hooks: List[Callable[[], Any]] = []
    method = getattr(record, name, None)
    if callable(method):
        hooks.append(method)
    with _listeners_lock:
        for klass in reversed(type(record).__mro__):
            for fn in _listeners.get(klass, {}).get(name, []):
                hooks.append(lambda fn=fn: fn(record))
    return hooks


def run_callbacks(record: Any, name: str) -> bool:
    """
    Run every hook registered under `name` for `record`.

    Returns:
        False if a before hook signalled abort, True otherwise
    """
    for hook in _hooks_for(record, name):
        result = hook()
        if result is False and name.startswith("before_"):
            logger.info(f"{name} hook halted for {type(record).__name__}")
            return False
    return True


def run_validation(record: Any) -> None:
    """Call the record's `validate()` hook if it defines one; RecordInvalid propagates."""
    validate = getattr(record, "validate", None)
    if callable(validate):
        validate()
