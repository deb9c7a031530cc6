"""Read-only tree queries over the inner code column.

Every query here is a prefix, equality or range predicate on the inner code
(plus the optional order/level columns). Nothing recurses and nothing joins
another table, so the same planner works on any SQL backend SQLAlchemy
supports. When order or level are not stored they are derived in SQL from
the code with ``length``/``substr``.

All queries skip rows flagged by the soft-delete marker and apply the
isolation filters the planner was built with, then sort by code, which is
depth-first tree order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import Integer, cast, func, select, true

from pathtree.core.database.hierarchy.change import TreeSnapshot

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy import ColumnElement, Select

    from pathtree.core.database.hierarchy.metadata import TreeMetadata
    from pathtree.core.database.repository import TreeStore


T = TypeVar("T")


class TreeQueryPlanner(Generic[T]):
    """Build and run the selection queries used to plan tree mutations.

    Example:
        planner = TreeQueryPlanner(store, metadata, isolation={"tenant_id": "t1"})
        children = await planner.children("0001")
        later = await planner.siblings_and_descendants_from("00010002")
    """

    def __init__(
        self,
        store: TreeStore[T],
        metadata: TreeMetadata,
        *,
        isolation: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize planner.

        Args:
            store: Store used to run statements
            metadata: Tree description of the store's model
            isolation: Column equality filters applied to every query, for
                tables holding several independent trees
        """
        self.store = store
        self.metadata = metadata
        self.codec = metadata.codec
        self.isolation: dict[str, Any] = dict(isolation or {})

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    @property
    def code(self) -> Any:
        return self.metadata.code_column

    def order_expression(self) -> Any:
        """SQL expression for the sibling order of a row."""
        if self.metadata.order_field:
            return self.metadata.column(self.metadata.order_field)
        size = self.codec.sign_length
        return cast(func.substr(self.code, func.length(self.code) - (size - 1), size), Integer)

    def level_clause(self, level: int) -> ColumnElement[bool]:
        """Restrict rows to one depth."""
        if self.metadata.level_field:
            return self.metadata.column(self.metadata.level_field) == level
        return func.length(self.code) == level * self.codec.sign_length

    def scope_clauses(self) -> list[ColumnElement[bool]]:
        """Filters shared by every query: soft delete and isolation."""
        clauses: list[ColumnElement[bool]] = []
        if self.metadata.deleted_field:
            clauses.append(self.metadata.column(self.metadata.deleted_field).is_not(true()))
        for attr, value in self.isolation.items():
            column = getattr(self.metadata.model, attr)
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    def select(self) -> Select[Any]:
        """SELECT of the model restricted to the planner's scope."""
        return select(self.metadata.model).where(*self.scope_clauses())

    def _children_clause(self, parent_code: str) -> ColumnElement[bool]:
        return self.code.like(f"{parent_code}{self.codec.wildcard}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_code(self, code: str) -> T | None:
        """Row holding a given inner code."""
        if not code:
            return None
        rows = await self.store.execute(self.select().where(self.code == code).limit(1))
        return rows[0] if rows else None

    async def children(self, code: str, *, recursive: bool = False) -> list[T]:
        """Direct children of a node, in order. ``""`` lists the roots.

        With ``recursive`` the whole subtree is returned (see descendants()).
        """
        if recursive:
            return await self.descendants(code)
        stmt = self.select().where(self._children_clause(code)).order_by(self.code)
        return await self.store.execute(stmt)

    async def roots(self) -> list[T]:
        """Nodes at level 1."""
        return await self.children("")

    async def descendants(self, code: str) -> list[T]:
        """Every row strictly below a node, in depth-first order."""
        if code:
            stmt = self.select().where(self.code.like(f"{code}%"), self.code != code)
        else:
            stmt = self.select().where(func.length(self.code) > 0)
        return await self.store.execute(stmt.order_by(self.code))

    async def count_children(self, code: str) -> int:
        """Number of direct children of a node."""
        stmt = (
            select(func.count())
            .select_from(self.metadata.model)
            .where(*self.scope_clauses(), self._children_clause(code))
        )
        return int(await self.store.scalar(stmt) or 0)

    async def has_children(self, code: str) -> bool:
        """Whether a node has at least one child."""
        stmt = self.select().where(self._children_clause(code)).limit(1)
        return bool(await self.store.execute(stmt))

    async def max_order_under_parent(self, parent_code: str) -> int:
        """Largest sibling order below a parent, 0 when it has no children."""
        stmt = select(func.max(self.order_expression())).where(
            *self.scope_clauses(), self._children_clause(parent_code)
        )
        return int(await self.store.scalar(stmt) or 0)

    async def siblings_and_descendants_from(
        self,
        code: str | TreeSnapshot,
        order: int | None = None,
        *,
        include_current: bool = False,
        exclude_prefix: str | None = None,
        is_top: bool = False,
    ) -> list[T]:
        """Later siblings of a node together with their whole subtrees.

        These are the rows renumbered when a node is inserted before, or
        removed from, a sibling position.

        Args:
            code: Code (or snapshot) of the node the range starts at
            order: Order of that node; decoded from the code when omitted
            include_current: Include the node itself and its subtree
            exclude_prefix: Skip the subtree under this code
            is_top: Only keep siblings whose code sorts before
                ``exclude_prefix``, stopping the range at that node

        Returns:
            Matching rows ordered by code
        """
        if isinstance(code, TreeSnapshot):
            code, order = code.code, code.order
        if order is None:
            order = self.codec.order_of(code)

        order_expr = self.order_expression()
        sibling_filters: list[ColumnElement[bool]] = [
            *self.scope_clauses(),
            self._children_clause(self.codec.parent_of(code)),
            self.level_clause(self.codec.level_of(code)),
            order_expr >= order if include_current else order_expr > order,
        ]
        if not include_current:
            sibling_filters.append(self.code != code)
        if exclude_prefix:
            sibling_filters.append(self.code.not_like(f"{exclude_prefix}%"))
            if is_top:
                sibling_filters.append(self.code < exclude_prefix)

        siblings = select(self.code).where(*sibling_filters).correlate(None)
        stmt = (
            self.select()
            .where(func.substr(self.code, 1, len(code)).in_(siblings))
            .order_by(self.code)
        )
        return await self.store.execute(stmt)

    async def previous_sibling(self, code: str, order: int | None = None) -> T | None:
        """Closest sibling before a node."""
        order = self.codec.order_of(code) if order is None else order
        order_expr = self.order_expression()
        stmt = (
            self.select()
            .where(self._children_clause(self.codec.parent_of(code)), order_expr < order)
            .order_by(order_expr.desc())
            .limit(1)
        )
        rows = await self.store.execute(stmt)
        return rows[0] if rows else None

    async def next_sibling(self, code: str, order: int | None = None) -> T | None:
        """Closest sibling after a node."""
        order = self.codec.order_of(code) if order is None else order
        order_expr = self.order_expression()
        stmt = (
            self.select()
            .where(self._children_clause(self.codec.parent_of(code)), order_expr > order)
            .order_by(order_expr.asc())
            .limit(1)
        )
        rows = await self.store.execute(stmt)
        return rows[0] if rows else None

    async def ancestors(self, code: str, *, nearest_first: bool = False) -> list[T]:
        """Proper ancestors of a node.

        Args:
            code: Code of the node
            nearest_first: Return the parent first instead of the root
        """
        prefixes = self.codec.ancestor_codes(code)
        if not prefixes:
            return []
        length = func.length(self.code)
        stmt = (
            self.select()
            .where(self.code.in_(prefixes))
            .order_by(length.desc() if nearest_first else length.asc())
        )
        return await self.store.execute(stmt)


__all__ = ["TreeQueryPlanner"]
