"""Tests for tree metadata and the metadata registry."""

from __future__ import annotations

import pytest

from pathtree.core.database.exceptions import MetadataMissingError
from pathtree.core.database.hierarchy import (
    PathCodec,
    TreeMetadata,
    TreeMetadataRegistry,
    TreeMutationEngine,
)
from pathtree.core.database.repository import TreeStore
from pathtree.core.settings import TreeSettings
from tests.fixtures import Category, Region, Tag


class NotMapped:
    code = ""


@pytest.fixture
def registry() -> TreeMetadataRegistry:
    return TreeMetadataRegistry(TreeSettings(sign_length=5, name_separator="|"))


@pytest.mark.unit
class TestTreeMetadata:
    """Validation of bindings."""

    def test_register_uses_settings_defaults(self, registry: TreeMetadataRegistry):
        meta = registry.register(Category, code_field="code", name_field="name")

        assert meta.sign_length == 5
        assert meta.name_separator == "|"
        assert meta.codec == PathCodec(5)
        assert meta.model_name == "Category"

    def test_explicit_values_win(self, registry: TreeMetadataRegistry):
        meta = registry.register(Tag, code_field="code", sign_length=2)

        assert meta.sign_length == 2
        assert meta.codec.max_order == 99

    def test_bound_fields_in_binding_order(self, registry: TreeMetadataRegistry):
        meta = registry.register(
            Region,
            code_field="code",
            name_field="name",
            full_name_field="full_name",
            order_field="sort_order",
            level_field="depth",
        )

        assert list(meta.bound_fields()) == ["code", "name", "full_name", "sort_order", "depth"]
        assert meta.tracks_full_name
        assert not meta.supports_soft_delete

    def test_soft_delete_binding(self, registry: TreeMetadataRegistry):
        meta = registry.register(Category, code_field="code", deleted_field="is_deleted")

        assert meta.supports_soft_delete
        assert not meta.tracks_full_name

    def test_missing_code_field(self, registry: TreeMetadataRegistry):
        with pytest.raises(MetadataMissingError, match="No inner code field"):
            registry.register(Category, name_field="name")

    def test_unknown_column(self, registry: TreeMetadataRegistry):
        with pytest.raises(MetadataMissingError) as exc_info:
            registry.register(Category, code_field="path")

        assert "not a mapped column" in str(exc_info.value)
        assert exc_info.value.model_name == "Category"

    def test_unknown_binding_name(self, registry: TreeMetadataRegistry):
        with pytest.raises(MetadataMissingError, match="Unknown tree bindings: parent_field"):
            registry.register(Category, code_field="code", parent_field="parent_id")

    def test_full_name_requires_name(self):
        with pytest.raises(MetadataMissingError, match="requires a name field"):
            TreeMetadata(model=Category, code_field="code", full_name_field="full_name")

    def test_unmapped_class(self):
        with pytest.raises(MetadataMissingError, match="not a mapped class"):
            TreeMetadata(model=NotMapped, code_field="code", sign_length=4, name_separator="/")

    def test_invalid_sign_length(self):
        with pytest.raises(MetadataMissingError, match="sign_length"):
            TreeMetadata(model=Category, code_field="code", sign_length=0, name_separator="/")

    def test_metadata_is_frozen(self, registry: TreeMetadataRegistry):
        meta = registry.register(Category, code_field="code")

        with pytest.raises(AttributeError):
            meta.code_field = "name"  # type: ignore[misc]


@pytest.mark.unit
class TestTreeMetadataRegistry:
    """Registration and lookup."""

    def test_get_reads_tree_mapping(self, registry: TreeMetadataRegistry):
        meta = registry.get(Category)

        assert meta.code_field == "code"
        assert meta.deleted_field == "is_deleted"
        assert meta.name_separator == "/"
        assert Category in registry
        assert registry.get(Category) is meta

    def test_get_without_description(self, registry: TreeMetadataRegistry):
        with pytest.raises(MetadataMissingError, match="__tree_mapping__"):
            registry.get(NotMapped)

    def test_register_replaces(self, registry: TreeMetadataRegistry):
        registry.register(Tag, code_field="code", sign_length=2)
        replaced = registry.register(Tag, code_field="code", sign_length=3)

        assert registry.get(Tag) is replaced
        assert len(registry) == 1

    def test_add_and_clear(self, registry: TreeMetadataRegistry):
        meta = TreeMetadata(model=Tag, code_field="code", sign_length=2, name_separator="/")
        registry.add(meta)

        assert registry.get(Tag) is meta

        registry.clear()
        assert len(registry) == 0
        assert Tag not in registry

    def test_registries_are_independent(self, registry: TreeMetadataRegistry):
        other = TreeMetadataRegistry(TreeSettings(sign_length=3))
        registry.register(Tag, code_field="code")
        other.register(Tag, code_field="code")

        assert registry.get(Tag).sign_length == 5
        assert other.get(Tag).sign_length == 3

    async def test_engine_uses_given_registry(self, session, registry: TreeMetadataRegistry):
        registry.register(Tag, code_field="code", sign_length=3)
        engine = TreeMutationEngine(TreeStore(session, Tag), registry=registry)

        node = await engine.create(Tag(label="a"))

        assert node.code == "001"

    async def test_engine_without_metadata(self, session):
        with pytest.raises(MetadataMissingError):
            TreeMutationEngine(TreeStore(session, NotMapped), registry=TreeMetadataRegistry())
