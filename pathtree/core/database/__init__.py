"""Database layer: declarative base, backing store and inner-code trees."""

from pathtree.core.database.base import (
    NAMING_CONVENTION,
    Base,
    IntegerPKMixin,
    SoftDeleteMixin,
    TenantMixin,
)
from pathtree.core.database.exceptions import (
    CodeOverflowError,
    IllegalMoveError,
    MetadataMissingError,
    RepositoryError,
    StorageFailureError,
    TreeError,
)
from pathtree.core.database.hierarchy import (
    ChangeArgument,
    MutationKind,
    PathCodec,
    PaternalRelation,
    TreeHook,
    TreeMetadata,
    TreeMetadataRegistry,
    TreeMutationEngine,
    TreeNodeMixin,
    TreePosition,
    TreeQueryPlanner,
    TreeSnapshot,
    default_registry,
)
from pathtree.core.database.repository import TreeStore

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "ChangeArgument",
    "CodeOverflowError",
    "IllegalMoveError",
    "IntegerPKMixin",
    "MetadataMissingError",
    "MutationKind",
    "PathCodec",
    "PaternalRelation",
    "RepositoryError",
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
    "TreeStore",
    "default_registry",
]
