"""Declarative base and column mixins for tree-backed models.

Tree models are ordinary mapped classes; the engine only needs to know which
columns hold the inner code, name, full name, order and level (see
``hierarchy.metadata``). The mixins here cover the columns the engine can
optionally use besides those: a boolean delete marker for soft removal and a
tenant column for isolation filters.

Examples:
    class Category(Base, IntegerPKMixin, SoftDeleteMixin):
        __tablename__ = "categories"
        __tree_mapping__ = {"code_field": "code", "name_field": "name",
                            "full_name_field": "full_name", "deleted_field": "is_deleted"}

        code: Mapped[str] = mapped_column(String(200), index=True)
        name: Mapped[str] = mapped_column(String(100))
        full_name: Mapped[str | None] = mapped_column(String(1000))
"""

from __future__ import annotations

from sqlalchemy import Boolean, MetaData, String, false
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

# Consistent naming convention for database constraints
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base with automatic table naming.

    The automatic table naming can be overridden by setting __tablename__
    explicitly on the model class.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Auto-derive table name from class name (lowercase)."""
        return cls.__name__.lower()


class IntegerPKMixin:
    """Integer auto-increment primary key.

    Provides:
        id: Auto-incrementing integer primary key
    """

    __allow_unmapped__ = True

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing integer primary key",
    )


class SoftDeleteMixin:
    """Boolean delete marker for logical removal of tree nodes.

    When bound as ``deleted_field`` the engine's remove() flags the node and
    its subtree instead of deleting rows, blanks their inner codes, and every
    tree query skips flagged rows.

    Provides:
        is_deleted: True once the row has been removed logically
    """

    __allow_unmapped__ = True

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
        comment="Logical deletion flag",
    )


class TenantMixin:
    """Tenant column for isolating several trees in one table.

    Pass ``isolation={"tenant_id": ...}`` to the engine so that order
    numbers and sibling shifts only see one tenant's rows.

    Provides:
        tenant_id: String column (indexed for performance)
    """

    __allow_unmapped__ = True

    tenant_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Tenant ID for multi-tenant isolation",
    )


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "IntegerPKMixin",
    "SoftDeleteMixin",
    "TenantMixin",
]
