"""Tree metadata: which columns of a model take part in the inner code tree.

A model is described once and the description is reused by every planner and
engine built for it. Descriptions live in an explicit registry object rather
than in module-level caches, so tests and applications can hold several
independent configurations.

Example:
    >>> registry = TreeMetadataRegistry()
    >>> meta = registry.register(
    ...     Category,
    ...     code_field="code",
    ...     name_field="name",
    ...     full_name_field="full_name",
    ...     sign_length=4,
    ... )
    >>> meta.codec.encode("0001", 2)
    '00010002'

Models may also declare their bindings inline, read on first lookup:

    class Category(Base, IntegerPKMixin):
        __tablename__ = "categories"
        __tree_mapping__ = {"code_field": "code", "name_field": "name"}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import inspect as sa_inspect

from pathtree.core.database.exceptions import MetadataMissingError
from pathtree.core.database.hierarchy.codec import PathCodec
from pathtree.core.settings import get_tree_settings

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from pathtree.core.settings import TreeSettings

logger = logging.getLogger(__name__)

TREE_MAPPING_ATTRIBUTE = "__tree_mapping__"


def _default_sign_length() -> int:
    return get_tree_settings().sign_length


def _default_separator() -> str:
    return get_tree_settings().name_separator


@dataclass(frozen=True, slots=True)
class TreeMetadata:
    """Immutable description of a tree-backed model.

    Attributes:
        model: Mapped SQLAlchemy model class
        code_field: Attribute holding the inner code (required)
        name_field: Attribute holding the short name
        full_name_field: Attribute holding the separator-joined path of names
        order_field: Attribute storing the sibling order; derived from the
            code when None
        level_field: Attribute storing the depth; derived from the code when None
        deleted_field: Boolean delete marker used for soft removal
        sign_length: Characters per level in the inner code
        name_separator: Separator used to build full names
    """

    BINDINGS: ClassVar[tuple[str, ...]] = (
        "code_field",
        "name_field",
        "full_name_field",
        "order_field",
        "level_field",
        "deleted_field",
    )

    model: type[Any]
    code_field: str
    name_field: str | None = None
    full_name_field: str | None = None
    order_field: str | None = None
    level_field: str | None = None
    deleted_field: str | None = None
    sign_length: int = field(default_factory=_default_sign_length)
    name_separator: str = field(default_factory=_default_separator)
    codec: PathCodec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        model_name = getattr(self.model, "__name__", repr(self.model))

        if not self.code_field:
            raise MetadataMissingError(model_name, "No inner code field is bound")
        if self.full_name_field and not self.name_field:
            raise MetadataMissingError(
                model_name, "A full name field requires a name field"
            )
        if self.sign_length < 1:
            raise MetadataMissingError(
                model_name, f"sign_length must be positive, got {self.sign_length}"
            )
        if not self.name_separator:
            raise MetadataMissingError(model_name, "name_separator must not be empty")

        columns = _mapped_columns(self.model)
        if columns is None:
            raise MetadataMissingError(model_name, f"{model_name} is not a mapped class")
        for binding in self.BINDINGS:
            attr = getattr(self, binding)
            if attr is not None and attr not in columns:
                raise MetadataMissingError(
                    model_name, f"{binding} '{attr}' is not a mapped column of {model_name}"
                )

        object.__setattr__(self, "codec", PathCodec(self.sign_length))

    @property
    def model_name(self) -> str:
        """Name of the bound model class."""
        return self.model.__name__

    @property
    def tracks_full_name(self) -> bool:
        """Whether full names are maintained."""
        return self.name_field is not None and self.full_name_field is not None

    @property
    def supports_soft_delete(self) -> bool:
        """Whether a delete marker is bound."""
        return self.deleted_field is not None

    def column(self, attr: str) -> Any:
        """Return the instrumented attribute for a bound field name."""
        return getattr(self.model, attr)

    @property
    def code_column(self) -> Any:
        """Instrumented attribute of the inner code."""
        return getattr(self.model, self.code_field)

    def bound_fields(self) -> Iterator[str]:
        """Yield every bound attribute name (code first)."""
        for binding in self.BINDINGS:
            attr = getattr(self, binding)
            if attr is not None:
                yield attr

    @classmethod
    def from_mapping(
        cls,
        model: type[Any],
        mapping: Mapping[str, Any],
        settings: TreeSettings | None = None,
    ) -> TreeMetadata:
        """Build metadata from a dict of bindings.

        Args:
            model: Mapped model class
            mapping: Keyword bindings (code_field, name_field, ...)
            settings: Provides defaults for sign_length and name_separator

        Raises:
            MetadataMissingError: If bindings are unknown, missing or invalid
        """
        unknown = set(mapping) - {*cls.BINDINGS, "sign_length", "name_separator"}
        if unknown:
            raise MetadataMissingError(
                getattr(model, "__name__", repr(model)),
                f"Unknown tree bindings: {', '.join(sorted(unknown))}",
            )
        if "code_field" not in mapping:
            raise MetadataMissingError(
                getattr(model, "__name__", repr(model)), "No inner code field is bound"
            )

        settings = settings or get_tree_settings()
        values = {
            "sign_length": settings.sign_length,
            "name_separator": settings.name_separator,
            **mapping,
        }
        return cls(model=model, **values)


def _mapped_columns(model: type[Any]) -> set[str] | None:
    mapper = sa_inspect(model, raiseerr=False)
    if mapper is None:
        return None
    return {attr.key for attr in mapper.column_attrs}


class TreeMetadataRegistry:
    """Holds one TreeMetadata per model.

    Registration is expected during startup; lookups afterwards are plain
    dict reads.
    """

    def __init__(self, settings: TreeSettings | None = None) -> None:
        """Initialize empty registry.

        Args:
            settings: Defaults for sign_length/name_separator. Loaded lazily
                from the environment when omitted.
        """
        self._settings = settings
        self._metadata: dict[type[Any], TreeMetadata] = {}

    @property
    def settings(self) -> TreeSettings:
        """Settings providing binding defaults."""
        return self._settings or get_tree_settings()

    def register(self, model: type[Any], **bindings: Any) -> TreeMetadata:
        """Describe a model and store the description.

        Re-registering a model replaces its previous metadata.

        Args:
            model: Mapped model class
            **bindings: code_field, name_field, full_name_field, order_field,
                level_field, deleted_field, sign_length, name_separator

        Returns:
            The stored TreeMetadata

        Raises:
            MetadataMissingError: If the bindings are incomplete or invalid
        """
        metadata = TreeMetadata.from_mapping(model, bindings, self.settings)
        self._metadata[model] = metadata
        logger.debug(
            "Registered tree metadata",
            extra={
                "model": model.__name__,
                "code_field": metadata.code_field,
                "sign_length": metadata.sign_length,
            },
        )
        return metadata

    def add(self, metadata: TreeMetadata) -> TreeMetadata:
        """Store an already built TreeMetadata."""
        self._metadata[metadata.model] = metadata
        return metadata

    def get(self, model: type[Any]) -> TreeMetadata:
        """Look up metadata for a model.

        Falls back to the model's ``__tree_mapping__`` attribute and caches
        the result.

        Raises:
            MetadataMissingError: If the model has no tree description
        """
        metadata = self._metadata.get(model)
        if metadata is not None:
            return metadata

        mapping = getattr(model, TREE_MAPPING_ATTRIBUTE, None)
        if mapping is None:
            raise MetadataMissingError(
                getattr(model, "__name__", repr(model)),
                "No tree metadata registered and no __tree_mapping__ declared",
            )
        return self.register(model, **dict(mapping))

    def __contains__(self, model: object) -> bool:
        return model in self._metadata

    def __len__(self) -> int:
        return len(self._metadata)

    def clear(self) -> None:
        """Forget every registered model."""
        self._metadata.clear()


default_registry = TreeMetadataRegistry()


__all__ = [
    "TREE_MAPPING_ATTRIBUTE",
    "TreeMetadata",
    "TreeMetadataRegistry",
    "default_registry",
]
