"""
Paranoid Exceptions

Error taxonomy for the soft-delete layer. Errors raised by SQLAlchemy itself
(IntegrityError and friends) are never wrapped and reach the caller unchanged.
"""

from typing import Any, List, Optional, Sequence


class ParanoidError(Exception):
    """Base class for all soft-delete errors."""


class ConfigurationError(ParanoidError):
    """Raised when an entity is configured in a way that cannot be used."""


class RecordNotFound(ParanoidError):
    """Raised when one or more requested identifiers match no row."""

    def __init__(self, entity: type, ids: Sequence[Any], found: int = 0):
        self.entity = entity
        self.ids = list(ids)
        self.found = found
        name = entity.__name__
        if len(self.ids) == 1:
            message = f"Couldn't find {name} with ID={self.ids[0]}"
        else:
            joined = ", ".join(str(i) for i in self.ids)
            message = (
                f"Couldn't find all {name} with IDs ({joined}) "
                f"(found {found} results, but was looking for {len(self.ids)})"
            )
        super().__init__(message)


class FrozenRecordError(ParanoidError):
    """Raised when writing to a record that was soft-deleted in memory."""

    def __init__(self, record: Any, attribute: str):
        self.record = record
        self.attribute = attribute
        super().__init__(f"Can't modify frozen {type(record).__name__}: attempted to set {attribute!r}")


class RecordInvalid(ParanoidError):
    """Raised by validation hooks when a record cannot be persisted."""

    def __init__(self, record: Any, errors: Optional[List[str]] = None):
        self.record = record
        self.errors = errors or []
        detail = ", ".join(self.errors) if self.errors else "record is invalid"
        super().__init__(f"Validation failed for {type(record).__name__}: {detail}")
