"""Tests for remove, rename, the pre-write hook and storage failures."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from pathtree.core.database.exceptions import StorageFailureError
from pathtree.core.database.hierarchy import (
    MutationKind,
    PaternalRelation,
    PathCodec,
    TreeMutationEngine,
    TreePosition,
    TreeQueryPlanner,
)
from pathtree.core.database.repository import TreeStore
from pathtree.core.settings import clear_settings_cache
from tests.fixtures import Category, Region, Tag, assert_consistent, build_tree, live_rows, outline

WORLD = {
    "Asia": {"China": {"Beijing": {}, "Shanghai": {}}, "Japan": {}},
    "Europe": {"France": {}},
    "Africa": {},
}


@pytest.fixture
async def world(categories: TreeMutationEngine[Category]) -> dict[str, Category]:
    return await build_tree(categories, WORLD)


async def check(session) -> None:
    assert_consistent(await live_rows(session, Category), PathCodec(4), "/")


def disk_error() -> OperationalError:
    return OperationalError("UPDATE categories", {}, Exception("disk I/O error"))


# ============================================================================
# Remove
# ============================================================================


@pytest.mark.asyncio
async def test_soft_remove_subtree(categories, world, session):
    removed = await categories.remove(world["China"])

    assert removed == 3
    assert world["Beijing"].is_deleted is True
    assert world["Beijing"].code == ""
    assert world["Japan"].code == "00010001"
    assert await outline(session, Category) == [
        ("0001", "Asia"),
        ("00010001", "Japan"),
        ("0002", "Europe"),
        ("00020001", "France"),
        ("0003", "Africa"),
    ]
    total = await session.scalar(select(func.count()).select_from(Category))
    assert total == 8
    await check(session)


@pytest.mark.asyncio
async def test_hard_remove_subtree(categories, world, session):
    removed = await categories.remove(world["Asia"], fake=False)

    assert removed == 5
    total = await session.scalar(select(func.count()).select_from(Category))
    assert total == 3
    assert await outline(session, Category) == [
        ("0001", "Europe"),
        ("00010001", "France"),
        ("0002", "Africa"),
    ]
    await check(session)


@pytest.mark.asyncio
async def test_soft_delete_setting_off(categories, world, session, monkeypatch):
    monkeypatch.setenv("TREE_SOFT_DELETE", "false")
    clear_settings_cache()

    await categories.remove(world["Japan"])

    total = await session.scalar(select(func.count()).select_from(Category))
    assert total == 7


@pytest.mark.asyncio
async def test_remove_without_delete_marker_is_hard(regions, session):
    nodes = await build_tree(regions, {"North": {"Lakes": {}}, "South": {}})

    assert await regions.remove(nodes["North"], fake=True) == 2

    rows = (await session.execute(select(Region).order_by(Region.code))).scalars().all()
    assert [(row.code, row.sort_order, row.depth) for row in rows] == [("001", 1, 1)]
    assert rows[0].name == "South"


@pytest.mark.asyncio
async def test_remove_last_leaf(categories, world, session):
    assert await categories.remove(world["Africa"]) == 1
    assert [row.name for row in await categories.roots()] == ["Asia", "Europe"]
    await check(session)


# ============================================================================
# Rename / update
# ============================================================================


@pytest.mark.asyncio
async def test_rename_rebuilds_subtree_full_names(categories, world, session):
    world["China"].name = "Cathay"

    await categories.update(world["China"])

    assert world["China"].full_name == "Asia/Cathay"
    assert world["Beijing"].full_name == "Asia/Cathay/Beijing"
    assert world["Shanghai"].full_name == "Asia/Cathay/Shanghai"
    assert world["Japan"].full_name == "Asia/Japan"
    await check(session)


@pytest.mark.asyncio
async def test_rename_root(categories, world, session):
    world["Europe"].name = "EU"

    await categories.rename(world["Europe"])

    assert world["Europe"].full_name == "EU"
    assert world["France"].full_name == "EU/France"
    await check(session)


@pytest.mark.asyncio
async def test_rename_node_whose_name_contains_separator(categories, session):
    nodes = await build_tree(categories, {"TCP/IP": {"Sockets": {}}})
    nodes["TCP/IP"].name = "Net"

    await categories.update(nodes["TCP/IP"])

    assert nodes["TCP/IP"].full_name == "Net"
    assert nodes["Sockets"].full_name == "Net/Sockets"
    await check(session)


@pytest.mark.asyncio
async def test_insert_and_move_beside_name_with_separator(categories, world, session):
    slashed = await categories.create(Category(name="A/B"), world["Asia"])

    new = await categories.insert(Category(name="C"), slashed, TreePosition.AFTER)
    await categories.move(world["France"], slashed, TreePosition.BEFORE)

    assert new.full_name == "Asia/C"
    assert world["France"].full_name == "Asia/France"
    await check(session)


@pytest.mark.asyncio
async def test_update_without_name_change_keeps_full_names(categories, world, session):
    await categories.update(world["China"])

    assert world["Beijing"].full_name == "Asia/China/Beijing"
    await check(session)


@pytest.mark.asyncio
async def test_update_model_without_names(tags, session):
    node = await tags.create(Tag(label="draft"))
    node.label = "final"

    await tags.update(node)

    label = await session.scalar(select(Tag.label).where(Tag.code == "01"))
    assert label == "final"


# ============================================================================
# Pre-write hook
# ============================================================================


@pytest.mark.asyncio
async def test_hook_vetoes_single_node(session, world):
    def hook(change, kind):
        assert kind is MutationKind.RENAME
        return change.entity.name != "Shanghai"

    engine = TreeMutationEngine.for_session(session, Category, hook=hook)
    world["China"].name = "Cathay"

    await engine.update(world["China"])

    assert world["Beijing"].full_name == "Asia/Cathay/Beijing"
    assert world["Shanghai"].full_name == "Asia/China/Shanghai"


@pytest.mark.asyncio
async def test_hook_vetoes_renamed_node(session, world):
    asia = world["Asia"]
    engine = TreeMutationEngine.for_session(
        session, Category, hook=lambda change, kind: change.entity is not asia
    )
    asia.name = "Orient"

    await engine.update(asia)

    assert asia.name == "Asia"
    assert asia.full_name == "Asia"
    assert world["China"].full_name == "Asia/China"
    assert await session.scalar(select(Category.name).where(Category.code == "0001")) == "Asia"
    await check(session)


@pytest.mark.asyncio
async def test_hook_vetoes_create(session):
    engine = TreeMutationEngine.for_session(session, Category, hook=lambda change, kind: False)

    assert await engine.create(Category(name="Asia")) is None
    assert await session.scalar(select(func.count()).select_from(Category)) == 0


@pytest.mark.asyncio
async def test_hook_sees_remove_and_shift(session, world):
    calls: list[tuple[MutationKind, str]] = []

    def hook(change, kind):
        calls.append((kind, change.old.code))
        return True

    engine = TreeMutationEngine.for_session(session, Category, hook=hook)
    await engine.remove(world["Europe"])

    assert (MutationKind.REMOVE, "0002") in calls
    assert (MutationKind.REMOVE, "00020001") in calls
    assert (MutationKind.MOVE, "0003") in calls


# ============================================================================
# Storage failures
# ============================================================================


@pytest.mark.asyncio
async def test_write_failure_rolls_back(categories, world, session, monkeypatch):
    before = await outline(session, Category)
    real_update_many = TreeStore.update_many

    async def failing(self, instances):
        await real_update_many(self, instances)
        raise disk_error()

    monkeypatch.setattr(TreeStore, "update_many", failing)

    with pytest.raises(StorageFailureError) as exc_info:
        await categories.move(world["Asia"], world["Africa"], TreePosition.AFTER)

    assert exc_info.value.operation == "move"
    assert "Failed while moving node" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert await outline(session, Category) == before


@pytest.mark.asyncio
async def test_planning_failure(categories, world, monkeypatch):
    async def failing(self, code):
        raise disk_error()

    monkeypatch.setattr(TreeQueryPlanner, "descendants", failing)

    with pytest.raises(StorageFailureError) as exc_info:
        await categories.remove(world["Asia"])

    assert exc_info.value.operation == "remove"


@pytest.mark.asyncio
async def test_remove_failure_keeps_rows(categories, world, session, monkeypatch):
    async def failing(self, instances, values):
        raise disk_error()

    monkeypatch.setattr(TreeStore, "bulk_update", failing)

    with pytest.raises(StorageFailureError, match="Failed while removing node"):
        await categories.remove(world["China"])

    rows = await live_rows(session, Category)
    assert len(rows) == 8
    await check(session)


# ============================================================================
# Query helpers
# ============================================================================


@pytest.mark.asyncio
async def test_relations(categories, world):
    asia, beijing, japan = world["Asia"], world["Beijing"], world["Japan"]

    assert categories.paternal_relation(asia, beijing) is PaternalRelation.ANCESTOR
    assert categories.paternal_relation(beijing, asia) is PaternalRelation.DESCENDANT
    assert categories.paternal_relation(japan, beijing) is PaternalRelation.UNRELATED
    assert categories.is_parental(beijing, asia)
    assert not categories.is_parental(japan, beijing)
    assert categories.is_ancestor_of(asia, beijing)
    assert not categories.is_ancestor_of(beijing, asia)
    assert not categories.is_ancestor_of(asia, asia)
    assert categories.is_sibling(world["China"], japan)
    assert not categories.is_sibling(asia, japan)


@pytest.mark.asyncio
async def test_navigation_helpers(categories, world):
    assert [n.name for n in await categories.children(world["Asia"], recursive=True)] == [
        "China",
        "Beijing",
        "Shanghai",
        "Japan",
    ]
    assert [n.name for n in await categories.descendants(world["China"])] == ["Beijing", "Shanghai"]
    assert await categories.count_children(world["China"]) == 2
    assert await categories.count_children() == 3
    assert await categories.has_children()
    assert (await categories.previous_sibling(world["Japan"])).name == "China"
    assert (await categories.next_sibling(world["China"])).name == "Japan"
    assert [n.name for n in await categories.ancestors(world["Shanghai"], nearest_first=True)] == [
        "China",
        "Asia",
    ]
    assert (await categories.get_by_code("00020001")).name == "France"


@pytest.mark.asyncio
async def test_node_mixin(world, session):
    china = world["China"]

    assert (china.tree_level, china.tree_order, china.is_root) == (2, 1, False)
    assert (await china.get_parent(session)).name == "Asia"
    assert [n.name for n in await china.get_children(session)] == ["Beijing", "Shanghai"]
    assert [n.name for n in await china.get_siblings(session)] == ["Japan"]
    assert [n.name for n in await china.get_siblings(session, include_self=True)] == [
        "China",
        "Japan",
    ]
    assert [n.name for n in await world["Beijing"].get_ancestors(session)] == ["Asia", "China"]
    assert len(await world["Asia"].get_descendants(session)) == 4
    assert [n.name for n in await Category.get_roots(session)] == ["Asia", "Europe", "Africa"]
    assert (await Category.get_by_code(session, "0003")).name == "Africa"
    assert await world["Asia"].get_parent(session) is None
