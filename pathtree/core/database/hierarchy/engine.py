"""Tree mutations over inner codes: create, insert, move, remove, rename.

Each operation runs in three phases:

1. Plan: read every row the mutation touches (later siblings and their
   subtrees, the node's own subtree, maximum sibling orders). Nothing is
   written and autoflush is suspended.
2. Compute: work out new codes, orders, levels and full names on
   ChangeArgument snapshots. Entities are not touched yet, so an overflow or
   illegal move leaves the session exactly as it was.
3. Write: inside one store transaction ask the pre-write hook about every
   changed row, copy approved snapshots onto the entities and flush them.
   Rows whose snapshot did not change are never written.

Example:
    engine = TreeMutationEngine.for_session(session, Category)
    asia = await engine.create(Category(name="Asia"))
    china = await engine.create(Category(name="China"), asia)
    await engine.move(china, None)            # to the root level
    await engine.remove(asia)                 # soft delete when configured

The engine is not safe for concurrent mutations of the same tree: two
engines renumbering the same siblings at once can produce duplicate codes.
Serialize writers per tree (or per isolation scope) in the application.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from pathtree.core.database.exceptions import IllegalMoveError, StorageFailureError
from pathtree.core.database.hierarchy.change import (
    ChangeArgument,
    MutationKind,
    PaternalRelation,
    TreePosition,
    TreeSnapshot,
)
from pathtree.core.database.hierarchy.codec import PathCodec, join_full_name
from pathtree.core.database.hierarchy.metadata import default_registry
from pathtree.core.database.hierarchy.planner import TreeQueryPlanner
from pathtree.core.database.repository import TreeStore
from pathtree.core.settings import get_tree_settings
from pathtree.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Iterator, Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from pathtree.core.database.hierarchy.metadata import TreeMetadata, TreeMetadataRegistry

TreeHook = Callable[[ChangeArgument, MutationKind], bool]
"""Pre-write hook: return False to skip writing that single node."""


class ChangeSet:
    """Changes planned for one mutation, keyed by entity identity.

    Planner queries return the session's own instances, so a row showing up
    in several result sets (or being the caller's reference node) maps to a
    single ChangeArgument whose ``new`` snapshot accumulates every shift.
    """

    def __init__(self, store: TreeStore[Any], metadata: TreeMetadata) -> None:
        self._store = store
        self._metadata = metadata
        self._changes: dict[tuple[Any, ...], ChangeArgument] = {}

    def track(self, entity: Any) -> ChangeArgument:
        """Return the change of an entity, snapshotting it on first sight."""
        key = self._store.identity(entity)
        change = self._changes.get(key)
        if change is None:
            change = ChangeArgument.for_entity(entity, self._metadata)
            self._changes[key] = change
        return change

    def find(self, entity: Any) -> ChangeArgument | None:
        return self._changes.get(self._store.identity(entity))

    def __iter__(self) -> Iterator[ChangeArgument]:
        return iter(self._changes.values())

    def __len__(self) -> int:
        return len(self._changes)


T = TypeVar("T")


class TreeMutationEngine(Generic[T]):
    """Mutate a materialized-path tree stored in one table.

    Features:
    - Create, insert before/after/under a reference, batch insert
    - Move with sibling renumbering, cycle rejection and no-op detection
    - Soft or hard removal of a whole subtree
    - Full name maintenance on rename and move
    - Pre-write hook with per-node veto
    """

    def __init__(
        self,
        store: TreeStore[T],
        *,
        metadata: TreeMetadata | None = None,
        registry: TreeMetadataRegistry | None = None,
        hook: TreeHook | None = None,
        isolation: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            store: Backing store for the model
            metadata: Tree description; looked up in ``registry`` when omitted
            registry: Registry to look metadata up in (default registry if None)
            hook: Called once per node about to be written
            isolation: Column equality filters scoping every query, and
                defaults for new nodes

        Raises:
            MetadataMissingError: If no metadata exists for the model
        """
        self.store = store
        self.metadata = metadata or (registry or default_registry).get(store.model)
        self.codec: PathCodec = self.metadata.codec
        self.separator = self.metadata.name_separator
        self.planner: TreeQueryPlanner[T] = TreeQueryPlanner(
            store, self.metadata, isolation=isolation
        )
        self.hook = hook
        # Standard logger for INFO/WARNING/ERROR
        self._logger = logging.getLogger(f"tree.{self.metadata.model_name}")
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(f"tree.{self.metadata.model_name}")

    @classmethod
    def for_session(
        cls,
        session: AsyncSession,
        model: type[T],
        *,
        autocommit: bool | None = None,
        **kwargs: Any,
    ) -> TreeMutationEngine[T]:
        """Build an engine with its own TreeStore on ``session``."""
        return cls(TreeStore(session, model, autocommit=autocommit), **kwargs)

    def snapshot(self, node: T) -> TreeSnapshot:
        """Current tree fields of a node."""
        return TreeSnapshot.from_entity(node, self.metadata)

    # ------------------------------------------------------------------
    # Create / insert
    # ------------------------------------------------------------------

    async def create(self, node: T, parent: T | None = None) -> T | None:
        """Append a node as the last child of ``parent`` (a root if None).

        Returns:
            The inserted node, or None when the hook vetoed it

        Raises:
            CodeOverflowError: If the parent already holds the maximum
                number of children
            StorageFailureError: If the store fails
        """
        return await self.insert(node, parent, TreePosition.CHILDREN)

    async def insert(
        self,
        node: T,
        reference: T | None = None,
        position: TreePosition | str = TreePosition.CHILDREN,
    ) -> T | None:
        """Insert a node relative to a reference node.

        BEFORE takes the reference's position and pushes it (and every later
        sibling) one slot down; AFTER takes the slot right after it; CHILDREN
        appends under it. Without a reference the node becomes the last root.
        """
        inserted = await self.batch_insert([node], reference, position)
        return inserted[0] if inserted else None

    async def batch_insert(
        self,
        nodes: Sequence[T],
        reference: T | None = None,
        position: TreePosition | str = TreePosition.CHILDREN,
    ) -> list[T]:
        """Insert several nodes as consecutive siblings in one transaction.

        Returns:
            The inserted nodes in order, or an empty list when the hook
            vetoed any of them (nothing is written then)
        """
        nodes = list(nodes)
        if not nodes:
            return []
        position = TreePosition(position)
        shifted = ChangeSet(self.store, self.metadata)
        ref = self.snapshot(reference) if reference is not None else None

        async with self._storage_errors("insert", "inserting"):
            with self.store.no_autoflush():
                if ref is None:
                    parent_code, parent_full = "", ""
                    first = await self.planner.max_order_under_parent("") + 1
                elif position is TreePosition.CHILDREN:
                    parent_code, parent_full = ref.code, ref.full_name
                    first = await self.planner.max_order_under_parent(ref.code) + 1
                else:
                    parent_code = self.codec.parent_of(ref.code)
                    parent_full = await self._stored_full_name(parent_code)
                    first = ref.order if position is TreePosition.BEFORE else ref.order + 1
                    later = await self.planner.siblings_and_descendants_from(
                        ref, include_current=position is TreePosition.BEFORE
                    )
                    self._shift(shifted, later, ref.level, len(nodes))

            created = [
                self._creation(node, parent_code, parent_full, first + index)
                for index, node in enumerate(nodes)
            ]
            self._lazy.debug(
                lambda: f"tree.insert plan: {[c.new.code for c in created]}, shifting {len(shifted)} rows"
            )

            async with self.store.transaction():
                if not all(self._approved(change, MutationKind.CREATE) for change in created):
                    self._logger.info(
                        "Tree insert vetoed by hook",
                        extra={"entity": self.metadata.model_name, "operation": "tree.insert"},
                    )
                    return []
                for change in created:
                    change.apply(force=True)
                    self._apply_isolation(change.entity)
                await self.store.update_many(self._collect(shifted, MutationKind.MOVE))
                await self.store.insert_many(nodes)

        self._logger.info(
            "Tree nodes inserted",
            extra={
                "entity": self.metadata.model_name,
                "operation": "tree.insert",
                "position": position.value,
                "codes": [change.new.code for change in created],
                "shifted": len(shifted),
            },
        )
        return nodes

    def _creation(self, node: T, parent_code: str, parent_full: str | None, order: int) -> ChangeArgument:
        change = ChangeArgument.for_entity(node, self.metadata)
        change.new.code = self.codec.encode(parent_code, order)
        change.new.order = order
        change.new.level = self.codec.level_of(change.new.code)
        if self.metadata.tracks_full_name:
            change.new.full_name = join_full_name(parent_full, change.new.name, self.separator)
        return change

    def _apply_isolation(self, node: T) -> None:
        for attr, value in self.planner.isolation.items():
            if getattr(node, attr, None) is None:
                setattr(node, attr, value)

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    async def move(
        self,
        node: T,
        reference: T | None = None,
        position: TreePosition | str | None = TreePosition.CHILDREN,
    ) -> bool:
        """Move a node, with its subtree, relative to a reference node.

        Without a reference the node becomes the last root. With a reference
        but no position the call only saves the node (see update()).

        Returns:
            True if codes were rewritten, False when the move was a no-op

        Raises:
            IllegalMoveError: If the reference lies inside the node's subtree
            CodeOverflowError: If a renumbered order does not fit
            StorageFailureError: If the store fails; the transaction is
                rolled back
        """
        if reference is not None and position is None:
            await self.update(node)
            return False
        position = TreePosition(position or TreePosition.CHILDREN)

        current = self.snapshot(node)
        ref = self.snapshot(reference) if reference is not None else None
        if ref is not None and self.codec.is_ancestor(current.code, ref.code):
            raise IllegalMoveError(current.code, ref.code)
        if not self._needs_move(node, current, reference, ref, position):
            self._lazy.debug(lambda: f"tree.move: {current.code} already in place")
            return False

        changes = ChangeSet(self.store, self.metadata)
        async with self._storage_errors("move", "moving"):
            with self.store.no_autoflush():
                target_parent, target_full, target_order = await self._plan_move(
                    changes, node, current, reference, ref, position
                )
                descendants = await self.planner.descendants(current.code)

            node_change = changes.track(node)
            node_change.new.code = self.codec.encode(target_parent, target_order)
            node_change.new.order = target_order
            node_change.new.level = self.codec.level_of(node_change.new.code)
            if self.metadata.tracks_full_name:
                node_change.new.full_name = join_full_name(
                    target_full, node_change.new.name, self.separator
                )

            depth = node_change.new.level - current.level
            subtree = []
            for row in descendants:
                change = changes.track(row)
                change.new.code = PathCodec.rebase(change.old.code, current.code, node_change.new.code)
                change.new.level = change.old.level + depth
                subtree.append(change)
            self._cascade_full_names(node_change, subtree)

            async with self.store.transaction():
                written = self._collect(changes, MutationKind.MOVE)
                await self.store.update_many(written)

        self._logger.info(
            "Tree node moved",
            extra={
                "entity": self.metadata.model_name,
                "operation": "tree.move",
                "position": position.value if reference is not None else "root",
                "from_code": current.code,
                "to_code": node_change.new.code,
                "written": len(written),
            },
        )
        return True

    async def _plan_move(
        self,
        changes: ChangeSet,
        node: T,
        current: TreeSnapshot,
        reference: T | None,
        ref: TreeSnapshot | None,
        position: TreePosition,
    ) -> tuple[str, str | None, int]:
        """Shift the affected siblings and work out where the node lands.

        Returns:
            (target parent code, target parent full name, target order)
        """
        beside = position in (TreePosition.BEFORE, TreePosition.AFTER)

        moving_up = (
            ref is not None
            and beside
            and self.codec.is_sibling(current.code, ref.code)
            and current.order > ref.order
        )
        if moving_up:
            # Moving up among siblings: only the rows between reference and node shift.
            between = await self.planner.siblings_and_descendants_from(
                ref,
                include_current=position is TreePosition.BEFORE,
                exclude_prefix=current.code,
                is_top=True,
            )
            self._shift(changes, between, ref.level, 1)
            anchor = ref
        else:
            # Close the gap the node leaves behind.
            later = await self.planner.siblings_and_descendants_from(current)
            self._shift(changes, later, current.level, -1)
            anchor = self._current(changes, reference, ref)
            if ref is not None and beside:
                following = await self.planner.siblings_and_descendants_from(
                    ref,
                    include_current=position is TreePosition.BEFORE,
                    exclude_prefix=current.code,
                )
                self._shift(changes, following, ref.level, 1)

        if ref is None or anchor is None:
            return "", "", await self.planner.max_order_under_parent("") + 1
        if position is TreePosition.CHILDREN:
            order = await self.planner.max_order_under_parent(ref.code) + 1
            return anchor.code, anchor.full_name, order

        order = anchor.order if position is TreePosition.BEFORE else anchor.order + 1
        # The reference's parent is never renumbered before the write phase.
        parent_full = await self._stored_full_name(self.codec.parent_of(ref.code))
        return self.codec.parent_of(anchor.code), parent_full, order

    def _needs_move(
        self,
        node: T,
        current: TreeSnapshot,
        reference: T | None,
        ref: TreeSnapshot | None,
        position: TreePosition,
    ) -> bool:
        if ref is None:
            return current.level != 1
        if reference is node or current.code == ref.code:
            return False
        if self.codec.is_sibling(current.code, ref.code):
            if position is TreePosition.AFTER and current.order - ref.order == 1:
                return False
            if position is TreePosition.BEFORE and ref.order - current.order == 1:
                return False
        elif position is TreePosition.CHILDREN and self.codec.is_child(ref.code, current.code):
            return False
        return True

    @staticmethod
    def _current(changes: ChangeSet, entity: Any, snapshot: TreeSnapshot | None) -> TreeSnapshot | None:
        """State of a row after the shifts planned so far."""
        if entity is None or snapshot is None:
            return snapshot
        change = changes.find(entity)
        return change.new.copy() if change is not None else snapshot

    async def shift_up(self, node: T) -> bool:
        """Swap a node with its previous sibling. False if it is already first."""
        current = self.snapshot(node)
        async with self._storage_errors("shift", "shifting"):
            previous = await self.planner.previous_sibling(current.code, current.order)
        if previous is None:
            return False
        return await self.move(node, previous, TreePosition.BEFORE)

    async def shift_down(self, node: T) -> bool:
        """Swap a node with its next sibling. False if it is already last."""
        current = self.snapshot(node)
        async with self._storage_errors("shift", "shifting"):
            following = await self.planner.next_sibling(current.code, current.order)
        if following is None:
            return False
        return await self.move(node, following, TreePosition.AFTER)

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    async def remove(self, node: T, *, fake: bool | None = None) -> int:
        """Remove a node and its whole subtree, closing the sibling gap.

        Args:
            node: Node to remove
            fake: Flag rows as deleted instead of deleting them. Needs a
                bound delete marker; defaults to TreeSettings.soft_delete.

        Returns:
            Number of rows removed or flagged
        """
        soft = (get_tree_settings().soft_delete if fake is None else fake) and (
            self.metadata.supports_soft_delete
        )
        current = self.snapshot(node)
        shifted = ChangeSet(self.store, self.metadata)

        async with self._storage_errors("remove", "removing"):
            with self.store.no_autoflush():
                subtree = [node, *await self.planner.descendants(current.code)]
                later = await self.planner.siblings_and_descendants_from(current)
            self._shift(shifted, later, current.level, -1)

            async with self.store.transaction():
                doomed = [
                    entity
                    for entity in subtree
                    if self._approved(self._removal(entity, soft), MutationKind.REMOVE)
                ]
                await self.store.update_many(self._collect(shifted, MutationKind.MOVE))
                if soft:
                    count = await self.store.bulk_update(
                        doomed,
                        {self.metadata.deleted_field: True, self.metadata.code_field: ""},
                    )
                else:
                    count = await self.store.bulk_delete(doomed)

        self._logger.info(
            "Tree node removed",
            extra={
                "entity": self.metadata.model_name,
                "operation": "tree.remove",
                "code": current.code,
                "soft": soft,
                "removed": count,
                "shifted": len(shifted),
            },
        )
        return count

    def _removal(self, entity: Any, soft: bool) -> ChangeArgument:
        change = ChangeArgument.for_entity(entity, self.metadata)
        if soft:
            change.new.code = ""
        return change

    # ------------------------------------------------------------------
    # Rename / update
    # ------------------------------------------------------------------

    async def rename(self, node: T) -> T:
        """Save a node whose name changed and rebuild affected full names.

        If the hook vetoes the node itself, its previous name is restored and
        nothing is written.
        """
        if not self.metadata.tracks_full_name:
            return await self._save(node)

        changes = ChangeSet(self.store, self.metadata)
        node_change = changes.track(node)

        async with self._storage_errors("rename", "renaming"):
            with self.store.no_autoflush():
                parent_code = self.codec.parent_of(node_change.old.code)
                parent_full = await self._stored_full_name(parent_code)
                descendants = await self.planner.descendants(node_change.old.code)
            node_change.new.full_name = join_full_name(
                parent_full, node_change.new.name, self.separator
            )
            subtree = [changes.track(row) for row in descendants]
            self._cascade_full_names(node_change, subtree)

            async with self.store.transaction():
                if not self._approved(node_change, MutationKind.RENAME):
                    self._revert_name(node)
                    self._logger.info(
                        "Tree rename vetoed by hook",
                        extra={
                            "entity": self.metadata.model_name,
                            "operation": "tree.rename",
                            "code": node_change.old.code,
                        },
                    )
                    return node
                node_change.apply()
                written = self._collect(subtree, MutationKind.RENAME)
                await self.store.update_many([node, *written])

        self._logger.info(
            "Tree node renamed",
            extra={
                "entity": self.metadata.model_name,
                "operation": "tree.rename",
                "code": node_change.old.code,
                "full_name": node_change.new.full_name,
                "written": len(written),
            },
        )
        return node

    async def update(self, node: T) -> T:
        """Save a node, cascading full names when its name changed."""
        if self.metadata.tracks_full_name and self._name_modified(node):
            return await self.rename(node)
        return await self._save(node)

    async def _save(self, node: T) -> T:
        async with self._storage_errors("update", "updating"):
            async with self.store.transaction():
                await self.store.update(node)
        return node

    def _name_modified(self, node: T) -> bool:
        # Checked before any query; a flush would reset the history.
        state = sa_inspect(node)
        return state.attrs[self.metadata.name_field].history.has_changes()

    def _revert_name(self, node: T) -> None:
        history = sa_inspect(node).attrs[self.metadata.name_field].history
        if history.deleted:
            self.store.set_field(node, self.metadata.name_field, history.deleted[0])

    async def _stored_full_name(self, code: str) -> str:
        """Full name stored on the node holding ``code`` ("" above the roots)."""
        if not code or not self.metadata.tracks_full_name:
            return ""
        row = await self.planner.get_by_code(code)
        if row is None:
            return ""
        return self.store.get_field(row, self.metadata.full_name_field) or ""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_code(self, code: str) -> T | None:
        """Node holding an inner code."""
        return await self.planner.get_by_code(code)

    async def roots(self) -> list[T]:
        """Nodes at level 1, in order."""
        return await self.planner.roots()

    async def children(self, node: T | None = None, *, recursive: bool = False) -> list[T]:
        """Children of a node (roots when None); the whole subtree if recursive."""
        code = self.snapshot(node).code if node is not None else ""
        return await self.planner.children(code, recursive=recursive)

    async def descendants(self, node: T) -> list[T]:
        """Every node below ``node``, depth first."""
        return await self.planner.descendants(self.snapshot(node).code)

    async def count_children(self, node: T | None = None) -> int:
        return await self.planner.count_children(self.snapshot(node).code if node is not None else "")

    async def has_children(self, node: T | None = None) -> bool:
        return await self.planner.has_children(self.snapshot(node).code if node is not None else "")

    async def ancestors(self, node: T, *, nearest_first: bool = False) -> list[T]:
        """Ancestors of a node, root first unless ``nearest_first``."""
        return await self.planner.ancestors(self.snapshot(node).code, nearest_first=nearest_first)

    async def previous_sibling(self, node: T) -> T | None:
        current = self.snapshot(node)
        return await self.planner.previous_sibling(current.code, current.order)

    async def next_sibling(self, node: T) -> T | None:
        current = self.snapshot(node)
        return await self.planner.next_sibling(current.code, current.order)

    def is_ancestor_of(self, first: T, second: T) -> bool:
        """Whether ``first`` is a proper ancestor of ``second``."""
        return self.codec.is_ancestor(self.snapshot(first).code, self.snapshot(second).code)

    def is_parental(self, first: T, second: T) -> bool:
        """Whether one node is an ancestor of the other."""
        return self.paternal_relation(first, second) is not PaternalRelation.UNRELATED

    def paternal_relation(self, first: T, second: T) -> PaternalRelation:
        """How ``first`` relates to ``second`` in the tree."""
        a, b = self.snapshot(first).code, self.snapshot(second).code
        if self.codec.is_ancestor(a, b):
            return PaternalRelation.ANCESTOR
        if self.codec.is_ancestor(b, a):
            return PaternalRelation.DESCENDANT
        return PaternalRelation.UNRELATED

    def is_sibling(self, first: T, second: T) -> bool:
        return self.codec.is_sibling(self.snapshot(first).code, self.snapshot(second).code)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _shift(self, changes: ChangeSet, rows: Iterable[Any], level: int, delta: int) -> None:
        """Renumber the segment at ``level`` of every row by ``delta``."""
        for row in rows:
            change = changes.track(row)
            change.new.code = self.codec.shift_segment(change.new.code, level, delta)
            if change.new.level == level:
                change.new.order += delta

    def _cascade_full_names(self, root: ChangeArgument, descendants: Iterable[ChangeArgument]) -> None:
        """Rebuild full names below ``root`` from each row's own name."""
        if not self.metadata.tracks_full_name:
            return
        full_names = {root.new.code: root.new.full_name}
        for change in sorted(descendants, key=lambda c: c.new.code):
            parent_full = full_names.get(self.codec.parent_of(change.new.code), root.new.full_name)
            change.new.full_name = join_full_name(parent_full, change.new.name, self.separator)
            full_names[change.new.code] = change.new.full_name

    def _approved(self, change: ChangeArgument, kind: MutationKind) -> bool:
        if self.hook is None:
            return True
        if self.hook(change, kind):
            return True
        self._lazy.debug(lambda: f"tree.hook vetoed {kind.value} of {change.old.code or change.new.code}")
        return False

    def _collect(self, changes: Iterable[ChangeArgument], kind: MutationKind) -> list[Any]:
        """Apply changed, hook-approved snapshots and return their entities."""
        entities = []
        for change in changes:
            if not change.is_changed or not self._approved(change, kind):
                continue
            change.apply()
            entities.append(change.entity)
        return entities

    @asynccontextmanager
    async def _storage_errors(self, operation: str, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._logger.error(
                "Tree operation failed",
                extra={
                    "entity": self.metadata.model_name,
                    "operation": f"tree.{operation}",
                    "error": str(exc),
                },
            )
            raise StorageFailureError(
                operation, f"Failed while {action} node", self.metadata.model_name
            ) from exc


__all__ = ["ChangeSet", "TreeHook", "TreeMutationEngine"]
