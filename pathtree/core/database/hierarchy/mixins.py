"""Mixin adding tree navigation to inner-code models.

The mixin only reads. Anything that renumbers codes goes through
TreeMutationEngine, which keeps siblings contiguous and full names current.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from pathtree.core.database.hierarchy.metadata import default_registry
from pathtree.core.database.hierarchy.planner import TreeQueryPlanner
from pathtree.core.database.repository import TreeStore

if TYPE_CHECKING:
    from typing import Self

    from sqlalchemy.ext.asyncio import AsyncSession

    from pathtree.core.database.hierarchy.metadata import TreeMetadata, TreeMetadataRegistry


class TreeNodeMixin:
    """Navigation helpers for models described in a TreeMetadataRegistry.

    Example:
        >>> class Category(Base, IntegerPKMixin, TreeNodeMixin):
        ...     __tablename__ = "categories"
        ...     __tree_mapping__ = {"code_field": "code", "name_field": "name"}
        ...     code: Mapped[str] = mapped_column(String(200), index=True)
        ...     name: Mapped[str] = mapped_column(String(100))
        >>>
        >>> cat = await session.get(Category, 1)
        >>> cat.tree_level                       # no query
        2
        >>> children = await cat.get_children(session)
        >>> ancestors = await cat.get_ancestors(session)
        >>> roots = await Category.get_roots(session)

    Note:
        - Soft-deleted rows are skipped when a delete marker is bound
        - Override ``__tree_registry__`` to look metadata up elsewhere
    """

    __allow_unmapped__ = True

    __tree_registry__: ClassVar[TreeMetadataRegistry] = default_registry

    @classmethod
    def tree_metadata(cls) -> TreeMetadata:
        """Tree description of this model."""
        return cls.__tree_registry__.get(cls)

    @classmethod
    def _planner(cls, session: AsyncSession) -> TreeQueryPlanner[Any]:
        return TreeQueryPlanner(TreeStore(session, cls, autocommit=False), cls.tree_metadata())

    @property
    def tree_code(self) -> str:
        return getattr(self, self.tree_metadata().code_field) or ""

    @property
    def tree_level(self) -> int:
        """Depth of this node (1 for roots), without querying."""
        return self.tree_metadata().codec.level_of(self.tree_code)

    @property
    def tree_order(self) -> int:
        """Position among siblings (1-based), without querying."""
        return self.tree_metadata().codec.order_of(self.tree_code)

    @property
    def is_root(self) -> bool:
        return self.tree_level == 1

    async def get_parent(self, session: AsyncSession) -> Self | None:
        """Parent node, None for roots."""
        parent_code = self.tree_metadata().codec.parent_of(self.tree_code)
        return await self._planner(session).get_by_code(parent_code)

    async def get_children(self, session: AsyncSession) -> list[Self]:
        """Direct children, ordered by position."""
        if not self.tree_code:
            return []
        return await self._planner(session).children(self.tree_code)

    async def get_siblings(self, session: AsyncSession, *, include_self: bool = False) -> list[Self]:
        """Nodes sharing this node's parent, ordered by position."""
        if not self.tree_code:
            return []
        codec = self.tree_metadata().codec
        siblings = await self._planner(session).children(codec.parent_of(self.tree_code))
        if include_self:
            return siblings
        return [node for node in siblings if node.tree_code != self.tree_code]

    async def get_ancestors(self, session: AsyncSession, *, nearest_first: bool = False) -> list[Self]:
        """Ancestors from the root down to the parent (reversed if nearest_first)."""
        return await self._planner(session).ancestors(self.tree_code, nearest_first=nearest_first)

    async def get_descendants(self, session: AsyncSession) -> list[Self]:
        """Whole subtree below this node, in depth-first order."""
        if not self.tree_code:
            return []
        return await self._planner(session).descendants(self.tree_code)

    @classmethod
    async def get_roots(cls, session: AsyncSession) -> list[Self]:
        """Level-1 nodes, ordered by position."""
        return await cls._planner(session).roots()

    @classmethod
    async def get_by_code(cls, session: AsyncSession, code: str) -> Self | None:
        """Node holding an exact inner code."""
        return await cls._planner(session).get_by_code(code)


__all__ = ["TreeNodeMixin"]
