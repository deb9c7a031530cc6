"""Database repository and tree persistence exceptions.

Custom exceptions for repository and tree operations that provide better
error messages and typing than raw SQLAlchemy exceptions.
"""
from __future__ import annotations

from typing import Any


class RepositoryError(Exception):
    """Base exception for repository operations.

    Raised when a repository operation fails due to programming
    errors, configuration issues, or unexpected states.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize repository error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class TreeError(RepositoryError):
    """Base exception for hierarchical (inner code) tree operations."""


class CodeOverflowError(TreeError):
    """Sibling order does not fit into one inner code segment.

    Raised before any write happens. With a segment width of 4 a parent can
    hold at most 9999 children.

    Attributes:
        order: The order number that could not be encoded
        sign_length: Segment width in characters
    """

    def __init__(self, order: int, sign_length: int):
        """Initialize code overflow error.

        Args:
            order: Order number that overflowed
            sign_length: Configured segment width
        """
        self.order = order
        self.sign_length = sign_length
        super().__init__(
            f"Order {order} cannot be encoded in {sign_length} digits",
            details={"order": order, "sign_length": sign_length},
        )


class IllegalMoveError(TreeError):
    """Node cannot be moved relative to one of its own descendants."""

    def __init__(self, code: str, reference_code: str):
        """Initialize illegal move error.

        Args:
            code: Inner code of the node being moved
            reference_code: Inner code of the reference node
        """
        self.code = code
        self.reference_code = reference_code
        super().__init__(
            "Cannot move a node under or next to its own descendant",
            details={"code": code, "reference": reference_code},
        )


class MetadataMissingError(TreeError):
    """Tree metadata is absent or incomplete for a model.

    Raised when metadata is built or looked up, never in the middle
    of a mutation.
    """

    def __init__(self, model_name: str, message: str):
        """Initialize metadata error.

        Args:
            model_name: Name of the model class
            message: What is missing or invalid
        """
        self.model_name = model_name
        super().__init__(message, details={"model": model_name})


class StorageFailureError(TreeError):
    """The backing store failed while planning or writing a tree mutation.

    The underlying exception is chained as ``__cause__``. Any transaction that
    was open has already been rolled back when this is raised.

    Attributes:
        operation: Operation that failed (e.g. "move", "remove")
    """

    def __init__(self, operation: str, message: str, model_name: str | None = None):
        """Initialize storage failure.

        Args:
            operation: Name of the failing tree operation
            message: Human-readable message with operation context
            model_name: Name of the model (optional)
        """
        self.operation = operation
        details: dict[str, Any] = {"operation": operation}
        if model_name:
            details["model"] = model_name
        super().__init__(message, details=details)


__all__ = [
    "CodeOverflowError",
    "IllegalMoveError",
    "MetadataMissingError",
    "RepositoryError",
    "StorageFailureError",
    "TreeError",
]
