"""
Paranoid

Soft-delete overlay for SQLAlchemy models: destroy() stamps a deletion
timestamp instead of removing the row, and every finder, count and aggregate
hides stamped rows unless asked not to.
"""

from paranoid.callbacks import listen, remove_listeners
from paranoid.exceptions import (
    ConfigurationError,
    FrozenRecordError,
    ParanoidError,
    RecordInvalid,
    RecordNotFound,
)
from paranoid.models import ParanoidMixin, SoftDeleteColumns, acts_as_paranoid
from paranoid.registry import CapabilityRegistry, is_paranoid, registry
from paranoid.scope import build_predicate, current_time, filter_deleted, only_deleted

__all__ = [
    "CapabilityRegistry",
    "ConfigurationError",
    "FrozenRecordError",
    "ParanoidError",
    "ParanoidMixin",
    "RecordInvalid",
    "RecordNotFound",
    "SoftDeleteColumns",
    "acts_as_paranoid",
    "build_predicate",
    "current_time",
    "filter_deleted",
    "is_paranoid",
    "listen",
    "only_deleted",
    "registry",
    "remove_listeners",
]
