"""pathtree: materialized-path trees on SQLAlchemy.

Example:
    from pathtree import TreeMutationEngine, TreePosition

    engine = TreeMutationEngine.for_session(session, Category)
    root = await engine.create(Category(name="Asia"))
    await engine.create(Category(name="China"), root)
"""

from pathtree.core.database import (
    Base,
    ChangeArgument,
    CodeOverflowError,
    IllegalMoveError,
    IntegerPKMixin,
    MetadataMissingError,
    MutationKind,
    PathCodec,
    PaternalRelation,
    SoftDeleteMixin,
    StorageFailureError,
    TenantMixin,
    TreeError,
    TreeHook,
    TreeMetadata,
    TreeMetadataRegistry,
    TreeMutationEngine,
    TreeNodeMixin,
    TreePosition,
    TreeQueryPlanner,
    TreeSnapshot,
    TreeStore,
    default_registry,
)
from pathtree.core.settings import TreeSettings, get_tree_settings

__version__ = "0.1.0"

__all__ = [
    "Base",
    "ChangeArgument",
    "CodeOverflowError",
    "IllegalMoveError",
    "IntegerPKMixin",
    "MetadataMissingError",
    "MutationKind",
    "PathCodec",
    "PaternalRelation",
    "SoftDeleteMixin",
    "StorageFailureError",
    "TenantMixin",
    "TreeError",
    "TreeHook",
    "TreeMetadata",
    "TreeMetadataRegistry",
    "TreeMutationEngine",
    "TreeNodeMixin",
    "TreePosition",
    "TreeQueryPlanner",
    "TreeSnapshot",
    "TreeSettings",
    "TreeStore",
    "get_tree_settings",
    "__version__",
]
