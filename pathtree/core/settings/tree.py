"""Tree persistence settings."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TreeSettings(BaseSettings):
    """Defaults for inner code trees.

    Environment variables use TREE_ prefix.
    Example: TREE_SIGN_LENGTH=4, TREE_NAME_SEPARATOR=/
    """

    # Segment width: 4 allows up to 9999 children per parent
    sign_length: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Default number of digits per tree level in the inner code",
    )

    name_separator: str = Field(
        default="\\",
        min_length=1,
        max_length=8,
        description="Default separator used to join names into a full name",
    )

    autocommit: bool = Field(
        default=True,
        description="Commit the session when a tree mutation completes (False: flush only)",
    )

    soft_delete: bool = Field(
        default=True,
        description="Mark rows as deleted instead of removing them when a delete marker is bound",
    )

    @field_validator("name_separator")
    @classmethod
    def reject_digit_separator(cls, v: str) -> str:
        """Separators made of digits would be ambiguous with names."""
        if v.isdigit():
            raise ValueError("name_separator must not be numeric")
        return v

    model_config = SettingsConfigDict(
        env_prefix="TREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )
