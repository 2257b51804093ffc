"""
Paranoid Models

Declarative mixins that expose the soft-delete surface on mapped classes.

    class Widget(SoftDeleteColumns, ParanoidMixin, Base):
        __tablename__ = "widgets"
        id = Column(Integer, primary_key=True)

    Widget.acts_as_paranoid()

    Widget.find(db, "all")                      # deleted_at IS NULL OR deleted_at > now
    Widget.find(db, "all", with_deleted=True)   # every row
    Widget.count(db)
    widget.destroy()                            # UPDATE widgets SET deleted_at = now
    widget.destroy_hard()                       # DELETE FROM widgets
"""

from typing import Any, Optional

from sqlalchemy import Column, DateTime

from paranoid import lifecycle, query
from paranoid.exceptions import FrozenRecordError
from paranoid.registry import enable, registry


class SoftDeleteColumns:
    """Adds the default deletion timestamp column"""

    deleted_at = Column(DateTime, nullable=True, index=True)


class ParanoidMixin:
    """
    Soft delete behaviour for a mapped class.

    Mixing this in does not enable soft delete by itself: the class behaves
    like a plain model until acts_as_paranoid() registers it.
    """

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and lifecycle.is_frozen(self):
            raise FrozenRecordError(self, name)
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    @classmethod
    def acts_as_paranoid(cls, with_: Optional[str] = None) -> bool:
        return registry.enable(cls, with_=with_)

    @classmethod
    def is_paranoid(cls) -> bool:
        return registry.is_paranoid(cls)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    def find(cls, db, kind: Any = "all", **options) -> Any:
        return query.find(db, cls, kind, **options)

    @classmethod
    def find_with_deleted(cls, db, kind: Any = "all", **options) -> Any:
        return query.find_with_deleted(db, cls, kind, **options)

    @classmethod
    def find_only_deleted(cls, db, kind: Any = "all", **options) -> Any:
        return query.find_only_deleted(db, cls, kind, **options)

    @classmethod
    def exists(cls, db, ident: Any = None, **options) -> bool:
        return query.exists(db, cls, ident, **options)

    @classmethod
    def exists_with_deleted(cls, db, ident: Any = None, **options) -> bool:
        return query.exists_with_deleted(db, cls, ident, **options)

    @classmethod
    def count(cls, db, column: Any = None, **options) -> int:
        return query.count(db, cls, column, **options)

    @classmethod
    def count_with_deleted(cls, db, column: Any = None, **options) -> int:
        return query.count_with_deleted(db, cls, column, **options)

    @classmethod
    def calculate(cls, db, operation: str, column: Any = None, **options) -> Any:
        return query.calculate(db, cls, operation, column, **options)

    @classmethod
    def calculate_with_deleted(cls, db, operation: str, column: Any = None, **options) -> Any:
        return query.calculate_with_deleted(db, cls, operation, column, **options)

    @classmethod
    def delete_all(cls, db, where: Any = None) -> int:
        return query.delete_all(db, cls, where)

    @classmethod
    def delete_all_hard(cls, db, where: Any = None) -> int:
        return query.delete_all_hard(db, cls, where)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self) -> bool:
        return lifecycle.destroy(self)

    def destroy_hard(self) -> bool:
        return lifecycle.destroy_hard(self)

    def recover(self) -> bool:
        return lifecycle.recover(self)

    def reload(self):
        return lifecycle.reload(self)

    @property
    def is_deleted(self) -> bool:
        return lifecycle.is_deleted(self)

    @property
    def is_frozen(self) -> bool:
        return lifecycle.is_frozen(self)


def acts_as_paranoid(cls: Optional[type] = None, *, with_: Optional[str] = None) -> Any:
    """
    Enable soft delete for a mapped class; usable bare or with options.

        @acts_as_paranoid
        class Widget(ParanoidMixin, Base): ...

        @acts_as_paranoid(with_="removed_at")
        class Gadget(ParanoidMixin, Base): ...
    """

    def decorate(klass: type) -> type:
        enable(klass, with_=with_)
        return klass

    if cls is None:
        return decorate
    return decorate(cls)
