"""Test fixtures for pytest.

This module re-exports the tree test models and helpers for easier importing.
"""

from .tree_fixtures import (
    Category,
    Note,
    Region,
    Tag,
    assert_consistent,
    build_tree,
    live_rows,
    outline,
)

__all__ = [
    "Category",
    "Note",
    "Region",
    "Tag",
    "assert_consistent",
    "build_tree",
    "live_rows",
    "outline",
]
