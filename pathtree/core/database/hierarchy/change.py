"""Before/after snapshots of the tree fields of a single node."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathtree.core.database.hierarchy.metadata import TreeMetadata


class TreePosition(StrEnum):
    """Where a node goes relative to a reference node."""

    BEFORE = "before"
    AFTER = "after"
    CHILDREN = "children"


class MutationKind(StrEnum):
    """Kind of mutation reported to the pre-write hook."""

    CREATE = "create"
    RENAME = "rename"
    MOVE = "move"
    REMOVE = "remove"


class PaternalRelation(IntEnum):
    """Relation of a first node to a second one."""

    ANCESTOR = 1
    UNRELATED = 0
    DESCENDANT = -1


@dataclass(slots=True)
class TreeSnapshot:
    """Tree-relevant state of a node at one point in time.

    Order and level are always populated: read from their columns when bound,
    otherwise decoded from the inner code.
    """

    code: str
    order: int
    level: int
    name: str | None = None
    full_name: str | None = None

    @classmethod
    def from_entity(cls, entity: Any, metadata: TreeMetadata) -> TreeSnapshot:
        """Read the bound fields of an entity."""
        codec = metadata.codec
        code = getattr(entity, metadata.code_field) or ""

        order = getattr(entity, metadata.order_field) if metadata.order_field else None
        if order is None:
            order = codec.order_of(code)

        level = getattr(entity, metadata.level_field) if metadata.level_field else None
        if level is None:
            level = codec.level_of(code)

        return cls(
            code=code,
            order=int(order),
            level=int(level),
            name=getattr(entity, metadata.name_field) if metadata.name_field else None,
            full_name=(
                getattr(entity, metadata.full_name_field) if metadata.full_name_field else None
            ),
        )

    def copy(self) -> TreeSnapshot:
        """Return an independent copy."""
        return replace(self)


@dataclass(slots=True)
class ChangeArgument:
    """Old and new tree state of one entity within a mutation.

    The engine only edits ``new``; nothing reaches the entity until
    apply() is called during the write phase. The pre-write hook receives
    these objects and can compare both snapshots.

    Attributes:
        entity: The mapped instance being changed
        old: State loaded from the entity when the mutation was planned
        new: State the mutation wants to write
    """

    entity: Any
    old: TreeSnapshot
    new: TreeSnapshot
    metadata: TreeMetadata = field(repr=False)

    @classmethod
    def for_entity(cls, entity: Any, metadata: TreeMetadata) -> ChangeArgument:
        """Snapshot an entity; ``new`` starts as a copy of ``old``."""
        snapshot = TreeSnapshot.from_entity(entity, metadata)
        return cls(entity=entity, old=snapshot, new=snapshot.copy(), metadata=metadata)

    def _pairs(self) -> list[tuple[str, Any, Any]]:
        meta = self.metadata
        pairs = [(meta.code_field, self.old.code, self.new.code)]
        if meta.order_field:
            pairs.append((meta.order_field, self.old.order, self.new.order))
        if meta.level_field:
            pairs.append((meta.level_field, self.old.level, self.new.level))
        if meta.name_field:
            pairs.append((meta.name_field, self.old.name, self.new.name))
        if meta.full_name_field:
            pairs.append((meta.full_name_field, self.old.full_name, self.new.full_name))
        return pairs

    def changed_fields(self, *, force: bool = False) -> dict[str, Any]:
        """Bound attributes whose new value differs from the old one.

        Args:
            force: Return every bound attribute (used for inserts)
        """
        return {attr: new for attr, old, new in self._pairs() if force or old != new}

    @property
    def is_changed(self) -> bool:
        """Whether applying this change would modify the entity."""
        return bool(self.changed_fields())

    @property
    def code_changed(self) -> bool:
        """Whether the node moves (its inner code changes)."""
        return self.old.code != self.new.code

    def apply(self, *, force: bool = False) -> dict[str, Any]:
        """Write the new state onto the entity.

        Returns:
            The attributes that were set
        """
        changes = self.changed_fields(force=force)
        for attr, value in changes.items():
            setattr(self.entity, attr, value)
        return changes


__all__ = [
    "ChangeArgument",
    "MutationKind",
    "PaternalRelation",
    "TreePosition",
    "TreeSnapshot",
]
