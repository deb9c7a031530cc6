"""Materialized-path trees stored as fixed-width inner codes.

Each node carries a code made of one zero-padded order number per level
("0001", "00010003", ...). Ancestry, sibling order and depth follow from the
code alone, so any SQL backend can answer tree queries with LIKE prefixes.

Components:
    - PathCodec: Pure code arithmetic (encode, decode, shift, compare)
    - TreeMetadata / TreeMetadataRegistry: Which columns form the tree
    - TreeQueryPlanner: Read-only queries used to plan mutations
    - TreeMutationEngine: Create, insert, move, remove and rename nodes
    - TreeNodeMixin: Read-only navigation on model instances

Example:
    >>> from pathtree.core.database.hierarchy import TreeMutationEngine, TreePosition
    >>>
    >>> engine = TreeMutationEngine.for_session(session, Category)
    >>> asia = await engine.create(Category(name="Asia"))
    >>> europe = await engine.create(Category(name="Europe"))
    >>> await engine.move(europe, asia, TreePosition.BEFORE)
"""

from pathtree.core.database.hierarchy.change import (
    ChangeArgument,
    MutationKind,
    PaternalRelation,
    TreePosition,
    TreeSnapshot,
)
from pathtree.core.database.hierarchy.codec import (
    PathCodec,
    join_full_name,
    parent_full_name,
    trailing_full_name,
)
from pathtree.core.database.hierarchy.engine import ChangeSet, TreeHook, TreeMutationEngine
from pathtree.core.database.hierarchy.metadata import (
    TREE_MAPPING_ATTRIBUTE,
    TreeMetadata,
    TreeMetadataRegistry,
    default_registry,
)
from pathtree.core.database.hierarchy.mixins import TreeNodeMixin
from pathtree.core.database.hierarchy.planner import TreeQueryPlanner

__all__ = [
    "TREE_MAPPING_ATTRIBUTE",
    "ChangeArgument",
    "ChangeSet",
    "MutationKind",
    "PathCodec",
    "PaternalRelation",
    "TreeHook",
    "TreeMetadata",
    "TreeMetadataRegistry",
    "TreeMutationEngine",
    "TreeNodeMixin",
    "TreePosition",
    "TreeQueryPlanner",
    "TreeSnapshot",
    "default_registry",
    "join_full_name",
    "parent_full_name",
    "trailing_full_name",
]
