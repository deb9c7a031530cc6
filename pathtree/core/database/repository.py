"""Backing store for tree mutations on top of an AsyncSession.

The tree engine never talks to the session directly. It plans with
``execute``/``scalar``, writes with ``insert``/``update``/``bulk_delete``/
``bulk_update`` and wraps the write phase in ``transaction()``. Anything that
offers the same coroutine methods can stand in for TreeStore.

Example:
    from pathtree.core.database import TreeStore

    store = TreeStore(session, Category)
    async with store.transaction():
        await store.insert(category)
        await store.update(sibling)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from sqlalchemy import and_, or_
from sqlalchemy import delete as sql_delete
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update as sql_update

from pathtree.core.settings import get_tree_settings
from pathtree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Mapping, Sequence

    from sqlalchemy import ColumnElement, Executable
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute


T = TypeVar("T")


class TreeStore(Generic[T]):
    """Session-bound persistence primitives for one model.

    Provides:
        - execute(session statement) -> list[T]
        - scalar(statement) -> Any
        - get(id) -> T | None
        - insert(instance) / insert_many(instances)
        - update(instance) / update_many(instances)
        - bulk_delete(instances) -> int
        - bulk_update(instances, values) -> int
        - transaction() -> async context manager (re-entrant)
        - get_field / set_field / identity

    Session is always explicit; the store keeps no state besides the
    transaction nesting depth.
    """

    __slots__ = ("model", "session", "autocommit", "_depth", "_logger", "_lazy")

    def __init__(
        self,
        session: AsyncSession,
        model: type[T],
        *,
        autocommit: bool | None = None,
    ) -> None:
        """Initialize store.

        Args:
            session: Async session used for every statement
            model: Mapped model class
            autocommit: Commit when the outermost transaction() exits. When
                False the store only flushes and the caller commits. Defaults
                to TreeSettings.autocommit.
        """
        self.session = session
        self.model = model
        self.autocommit = get_tree_settings().autocommit if autocommit is None else autocommit
        self._depth = 0
        # Standard logger for INFO/WARNING/ERROR
        self._logger = logging.getLogger(f"tree.{model.__name__}.store")
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(f"tree.{model.__name__}.store")

    @property
    def in_transaction(self) -> bool:
        """Whether a transaction() block is currently open."""
        return self._depth > 0

    async def execute(self, statement: Executable) -> list[T]:
        """Run a SELECT returning model instances."""
        result = await self.session.execute(statement)
        items = list(result.scalars().all())
        self._lazy.debug(lambda: f"db.execute: {self.model.__name__} -> {len(items)} rows")
        return items

    async def scalar(self, statement: Executable) -> Any:
        """Run a statement returning a single value (None when no row)."""
        result = await self.session.execute(statement)
        return result.scalar()

    async def get(self, id: Any) -> T | None:  # noqa: A002
        """Get entity by primary key."""
        instance = await self.session.get(self.model, id)
        self._lazy.debug(
            lambda: f"db.get: {self.model.__name__}({id}) -> {'found' if instance else 'not found'}"
        )
        return instance

    async def insert(self, instance: T) -> T:
        """Add a new entity and flush it so generated keys are populated."""
        self.session.add(instance)
        await self.session.flush()
        self._lazy.debug(
            lambda: f"db.insert: {self.model.__name__}(id={getattr(instance, 'id', None)})"
        )
        return instance

    async def insert_many(self, instances: Iterable[T]) -> Sequence[T]:
        """Add several new entities in one flush."""
        instances_list = list(instances)
        self.session.add_all(instances_list)
        await self.session.flush()
        self._lazy.debug(
            lambda: f"db.insert_many: {self.model.__name__} -> {len(instances_list)} created"
        )
        return instances_list

    async def update(self, instance: T) -> T:
        """Flush pending attribute changes of an entity."""
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def update_many(self, instances: Iterable[T]) -> Sequence[T]:
        """Flush pending attribute changes of several entities at once."""
        instances_list = list(instances)
        if not instances_list:
            return instances_list
        self.session.add_all(instances_list)
        await self.session.flush()
        self._lazy.debug(
            lambda: f"db.update_many: {self.model.__name__} -> {len(instances_list)} updated"
        )
        return instances_list

    def no_autoflush(self) -> Any:
        """Context manager suspending autoflush while a mutation is planned."""
        return self.session.no_autoflush

    async def bulk_delete(self, instances: Iterable[T]) -> int:
        """Delete rows by primary key with a single DELETE statement.

        Returns:
            Number of rows deleted
        """
        instances_list = list(instances)
        if not instances_list:
            return 0

        stmt = sql_delete(self.model).where(self._pk_clause(instances_list))
        result = await self.session.execute(stmt)
        deleted_count: int = getattr(result, "rowcount", 0) or 0

        # WARNING level for bulk deletes > 10 (audit-worthy)
        if deleted_count > 10:
            self._logger.warning(
                "Bulk delete executed",
                extra={
                    "entity": self.model.__name__,
                    "requested": len(instances_list),
                    "deleted": deleted_count,
                    "operation": "db.bulk_delete",
                },
            )
        else:
            self._lazy.debug(
                lambda: f"db.bulk_delete: {self.model.__name__} -> {deleted_count} deleted"
            )
        return deleted_count

    async def bulk_update(self, instances: Iterable[T], values: Mapping[str, Any]) -> int:
        """Set the same values on several rows with a single UPDATE statement.

        Returns:
            Number of rows updated
        """
        instances_list = list(instances)
        if not instances_list:
            return 0

        stmt = sql_update(self.model).where(self._pk_clause(instances_list)).values(**values)
        result = await self.session.execute(stmt)
        updated_count: int = getattr(result, "rowcount", 0) or 0
        self._lazy.debug(
            lambda: f"db.bulk_update: {self.model.__name__}({sorted(values)}) -> {updated_count} updated"
        )
        return updated_count

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Group writes into one unit of work.

        The outermost block flushes and commits (or only flushes when
        autocommit is off); any exception rolls the session back and is
        re-raised unchanged. Nested blocks join the outer one.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield
            await self.session.flush()
            if self.autocommit:
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            self._logger.info(
                "Transaction rolled back",
                extra={"entity": self.model.__name__, "operation": "db.transaction"},
            )
            raise
        finally:
            self._depth = 0

    @staticmethod
    def get_field(instance: Any, name: str) -> Any:
        """Read a bound attribute."""
        return getattr(instance, name)

    @staticmethod
    def set_field(instance: Any, name: str, value: Any) -> None:
        """Write a bound attribute."""
        setattr(instance, name, value)

    def identity(self, instance: Any) -> tuple[Any, ...]:
        """Primary key values of an instance, as a tuple."""
        state = sa_inspect(instance)
        if state.identity is not None:
            return tuple(state.identity)
        return tuple(getattr(instance, attr.key) for attr in self._pk_attrs())

    def _pk_attrs(self) -> list[InstrumentedAttribute[Any]]:
        mapper = sa_inspect(self.model)
        return [
            cast("InstrumentedAttribute[Any]", getattr(self.model, mapper.get_property_by_column(col).key))
            for col in mapper.primary_key
        ]

    def _pk_clause(self, instances: Sequence[Any]) -> ColumnElement[bool]:
        pk_attrs = self._pk_attrs()
        keys = [self.identity(instance) for instance in instances]
        if len(pk_attrs) == 1:
            return pk_attrs[0].in_([key[0] for key in keys])
        return or_(
            *(and_(*(attr == value for attr, value in zip(pk_attrs, key, strict=True))) for key in keys)
        )


__all__ = ["TreeStore"]
