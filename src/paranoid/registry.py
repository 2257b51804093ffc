"""
Capability Registry

Tracks which mapped classes have soft delete enabled and which attribute
holds their deletion timestamp. Registration happens once per class and is
inherited by mapped subclasses; the attribute itself is resolved lazily on
first use.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import ColumnProperty

from paranoid import config
from paranoid.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParanoidOptions:
    """Options captured when soft delete is enabled for an entity."""

    deleted_attribute: str


class CapabilityRegistry:
    """Per-entity soft delete capabilities"""

    def __init__(self):
        self._entries: Dict[type, ParanoidOptions] = {}
        self._lock = threading.Lock()

    def _lookup(self, entity: type) -> Optional[ParanoidOptions]:
        for klass in getattr(entity, "__mro__", (entity,)):
            options = self._entries.get(klass)
            if options is not None:
                return options
        return None

    def enable(self, entity: type, with_: Optional[str] = None) -> bool:
        """
        Mark an entity type as paranoid.

        Args:
            entity: Mapped class
            with_: Name of the deletion timestamp attribute

        Returns:
            True if the entity was registered, False if it or one of its
            base classes already was
        """
        with self._lock:
            if self._lookup(entity) is not None:
                logger.debug(f"{entity.__name__} is already paranoid, ignoring repeated enable")
                return False
            attribute = with_ or config.DEFAULT_DELETED_ATTRIBUTE
            self._entries[entity] = ParanoidOptions(deleted_attribute=attribute)
        logger.debug(f"Enabled soft delete for {entity.__name__} using '{attribute}'")
        return True

    def disable(self, entity: type) -> None:
        """
        Remove the registration made for `entity` itself.

        Subclasses of a class that stays registered remain paranoid.
        """
        with self._lock:
            self._entries.pop(entity, None)

    def is_paranoid(self, entity: type) -> bool:
        return self._lookup(entity) is not None

    def options_for(self, entity: type) -> ParanoidOptions:
        options = self._lookup(entity)
        if options is None:
            raise ConfigurationError(f"{entity.__name__} is not paranoid")
        return options

    def deleted_attribute(self, entity: type) -> str:
        return self.options_for(entity).deleted_attribute

    def deleted_column(self, entity: type):
        """
        Resolve the mapped column attribute holding the deletion timestamp.

        Raises:
            ConfigurationError: the configured name is not a mapped column
        """
        attribute = self.deleted_attribute(entity)
        try:
            mapper = sa_inspect(entity)
        except NoInspectionAvailable:
            raise ConfigurationError(f"{entity.__name__} is not a mapped class") from None

        prop = mapper.attrs[attribute] if attribute in mapper.attrs else None
        if not isinstance(prop, ColumnProperty):
            raise ConfigurationError(
                f"{entity.__name__} has no mapped column '{attribute}' to hold the deletion timestamp"
            )
        return getattr(entity, attribute)


registry = CapabilityRegistry()


def enable(entity: type, with_: Optional[str] = None) -> bool:
    return registry.enable(entity, with_=with_)


def is_paranoid(entity: type) -> bool:
    return registry.is_paranoid(entity)
