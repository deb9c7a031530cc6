"""Fixed-width inner code arithmetic for materialized-path trees.

An inner code is the concatenation of one zero-padded order number per tree
level. With a segment width of 4:

- "0001"          first root node
- "00010003"      third child of the first root node
- "000100030002"  second child of that node

Because every segment has the same width, ancestry, sibling tests and depth
are plain string operations, and the database only needs prefix matching on a
single column. This module contains no I/O.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pathtree.core.database.exceptions import CodeOverflowError

if TYPE_CHECKING:
    from collections.abc import Iterator

DIGITS_PATTERN = re.compile(r"^[0-9]*$")


class PathCodec:
    """Encode, decode and compare inner codes of a given segment width.

    Instances are immutable and cheap; one is created per tree metadata.

    Example:
        >>> codec = PathCodec(4)
        >>> codec.encode("0001", 3)
        '00010003'
        >>> codec.decode("00010003")
        (2, 3)
        >>> codec.parent_of("00010003")
        '0001'
        >>> codec.is_ancestor("0001", "00010003")
        True
    """

    __slots__ = ("_sign_length", "_limit")

    def __init__(self, sign_length: int) -> None:
        """Initialize codec.

        Args:
            sign_length: Characters per tree level (segment width)

        Raises:
            ValueError: If sign_length is not positive
        """
        if sign_length < 1:
            raise ValueError(f"sign_length must be positive, got {sign_length}")
        self._sign_length = sign_length
        self._limit = 10**sign_length - 1

    @property
    def sign_length(self) -> int:
        """Segment width in characters."""
        return self._sign_length

    @property
    def max_order(self) -> int:
        """Largest order number a single segment can hold."""
        return self._limit

    @property
    def wildcard(self) -> str:
        """LIKE pattern matching exactly one segment."""
        return "_" * self._sign_length

    def segment(self, order: int) -> str:
        """Zero-pad an order number into one segment.

        Raises:
            CodeOverflowError: If the order needs more digits than the
                segment holds, or is negative
        """
        if order < 0 or order > self._limit:
            raise CodeOverflowError(order, self._sign_length)
        return str(order).zfill(self._sign_length)

    def encode(self, parent_code: str, order: int) -> str:
        """Build the code of the ``order``-th child of ``parent_code``.

        Args:
            parent_code: Code of the parent ("" for a root node)
            order: 1-based position among siblings

        Returns:
            New inner code one level deeper than parent_code

        Raises:
            CodeOverflowError: If order does not fit into one segment
        """
        return f"{parent_code}{self.segment(order)}"

    def decode(self, code: str) -> tuple[int, int]:
        """Return ``(level, order)`` of a code.

        An empty code decodes to ``(0, 0)``.
        """
        return self.level_of(code), self.order_of(code)

    def level_of(self, code: str | None) -> int:
        """Depth of a code; root nodes have level 1."""
        if not code:
            return 0
        return len(code) // self._sign_length

    def order_of(self, code: str | None) -> int:
        """Order number stored in the last segment."""
        if not code:
            return 0
        return int(code[-self._sign_length :])

    def parent_of(self, code: str, n: int = 1) -> str:
        """Drop the last ``n`` segments.

        Returns an empty string when that would go above the root.

        Example:
            >>> PathCodec(2).parent_of("010203", 2)
            '01'
            >>> PathCodec(2).parent_of("01")
            ''
        """
        cut = len(code) - self._sign_length * n
        if cut <= 0:
            return ""
        return code[:cut]

    def ancestor_codes(self, code: str) -> list[str]:
        """All proper prefixes of a code, root first.

        Example:
            >>> PathCodec(2).ancestor_codes("010203")
            ['01', '0102']
        """
        return [code[:end] for end in range(self._sign_length, len(code), self._sign_length)]

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Check whether ``ancestor`` is a proper ancestor of ``descendant``."""
        if not ancestor or not descendant:
            return False
        return len(ancestor) < len(descendant) and descendant.startswith(ancestor)

    def is_sibling(self, a: str, b: str) -> bool:
        """Check whether two codes share the same parent.

        A code is considered its own sibling, as both share one parent.
        """
        if len(a) != len(b) or len(a) < self._sign_length:
            return False
        return a[: -self._sign_length] == b[: -self._sign_length]

    def is_child(self, parent_code: str, code: str) -> bool:
        """Check whether ``code`` sits exactly one level below ``parent_code``."""
        return len(code) == len(parent_code) + self._sign_length and code.startswith(parent_code)

    def shift_segment(self, code: str, level: int, delta: int) -> str:
        """Add ``delta`` to the segment at ``level`` (1-based).

        Used to renumber a sibling together with its subtree: every row of the
        subtree carries the sibling's order at the same segment position.

        Example:
            >>> PathCodec(2).shift_segment("010203", 2, -1)
            '010103'

        Raises:
            CodeOverflowError: If the shifted order does not fit
        """
        start = (level - 1) * self._sign_length
        end = start + self._sign_length
        order = int(code[start:end]) + delta
        return f"{code[:start]}{self.segment(order)}{code[end:]}"

    @staticmethod
    def rebase(code: str, old_prefix: str, new_prefix: str) -> str:
        """Replace the ``old_prefix`` of ``code`` with ``new_prefix``."""
        if not code.startswith(old_prefix):
            raise ValueError(f"Code {code!r} does not start with {old_prefix!r}")
        return f"{new_prefix}{code[len(old_prefix):]}"

    def is_valid(self, code: str | None) -> bool:
        """Check that a code is made of whole, numeric segments."""
        if not code:
            return False
        return len(code) % self._sign_length == 0 and bool(DIGITS_PATTERN.match(code))

    def iter_segments(self, code: str) -> Iterator[int]:
        """Yield the order number of every level, root first."""
        for start in range(0, len(code), self._sign_length):
            yield int(code[start : start + self._sign_length])

    def __eq__(self, other: object) -> bool:
        """Codecs are equal when their segment width is."""
        if isinstance(other, PathCodec):
            return self._sign_length == other._sign_length
        return NotImplemented

    def __hash__(self) -> int:
        """Return hash for use in sets/dicts."""
        return hash(self._sign_length)

    def __repr__(self) -> str:
        """Return debug representation."""
        return f"PathCodec({self._sign_length})"


def parent_full_name(full_name: str | None, separator: str) -> str:
    """Drop the last part of a full name.

    Example:
        >>> parent_full_name("Asia/China/Beijing", "/")
        'Asia/China'
        >>> parent_full_name("Asia", "/")
        ''
    """
    if not full_name:
        return ""
    index = full_name.rfind(separator)
    return full_name[:index] if index != -1 else ""


def trailing_full_name(full_name: str | None, level: int, separator: str) -> str:
    """Drop the first ``level`` parts of a full name.

    Example:
        >>> trailing_full_name("Asia/China/Beijing/Haidian", 2, "/")
        'Beijing/Haidian'
    """
    rest = full_name or ""
    for _ in range(level):
        index = rest.find(separator)
        if index == -1:
            break
        rest = rest[index + len(separator) :]
    return rest


def join_full_name(parent: str | None, name: str | None, separator: str) -> str:
    """Append a name to a parent full name; a blank parent yields the name."""
    if not parent:
        return name or ""
    return f"{parent}{separator}{name or ''}"


__all__ = [
    "DIGITS_PATTERN",
    "PathCodec",
    "join_full_name",
    "parent_full_name",
    "trailing_full_name",
]
