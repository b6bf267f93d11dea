"""Pydantic schemas for bookmark endpoints."""
import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, HttpUrl, field_validator

from core.config import get_settings

# Tag format: lowercase alphanumeric with hyphens (e.g., 'machine-learning', 'web-dev')
TAG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


def validate_and_normalize_tags(tags: list[str]) -> list[str]:
    """
    Normalize and validate a list of tags.

    Args:
        tags: List of tag strings to validate.

    Returns:
        List of normalized tags (lowercase, trimmed), with empty strings filtered out
        and duplicates removed (preserving first occurrence order).

    Raises:
        ValueError: If any tag has invalid format.
    """
    normalized = []
    seen: set[str] = set()
    for tag in tags:
        trimmed = tag.lower().strip()
        if not trimmed:
            continue  # Skip empty tags silently
        if not TAG_PATTERN.match(trimmed):
            raise ValueError(
                f"Invalid tag format: '{trimmed}'. "
                "Use lowercase letters, numbers, and hyphens only (e.g., 'machine-learning').",
            )
        if trimmed not in seen:
            seen.add(trimmed)
            normalized.append(trimmed)
    return normalized


def validate_title_length(title: str | None) -> str | None:
    """Validate that title doesn't exceed maximum length."""
    settings = get_settings()
    if title is not None and len(title) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(title):,} characters).",
        )
    return title


def validate_description_length(description: str | None) -> str | None:
    """Validate that description doesn't exceed maximum length."""
    settings = get_settings()
    if description is not None and len(description) > settings.max_description_length:
        max_len = settings.max_description_length
        raise ValueError(
            f"Description exceeds maximum length of {max_len:,} characters "
            f"(got {len(description):,} characters).",
        )
    return description


class BookmarkCreate(BaseModel):
    """
    Schema for creating a new bookmark.

    Title and description are optional overrides; when empty, values fetched
    from the page are used instead.
    """

    # HttpUrl normalizes root domains with trailing slash (example.com -> example.com/)
    url: HttpUrl
    title: str | None = None
    description: str | None = None
    tags: list[str] = []

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str]:
        """Normalize and validate tags."""
        if v is None:
            return []
        return validate_and_normalize_tags(v)

    @field_validator("title")
    @classmethod
    def check_title_length(cls, v: str | None) -> str | None:
        """Validate title length."""
        return validate_title_length(v)

    @field_validator("description")
    @classmethod
    def check_description_length(cls, v: str | None) -> str | None:
        """Validate description length."""
        return validate_description_length(v)


class BookmarkUpdate(BaseModel):
    """
    Schema for updating an existing bookmark.

    Submitting a `url` different from the stored one refetches page metadata;
    all other fields are applied as-is.
    """

    url: HttpUrl | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        """Normalize and validate tags if provided."""
        if v is None:
            return None
        return validate_and_normalize_tags(v)

    @field_validator("title")
    @classmethod
    def check_title_length(cls, v: str | None) -> str | None:
        """Validate title length."""
        return validate_title_length(v)

    @field_validator("description")
    @classmethod
    def check_description_length(cls, v: str | None) -> str | None:
        """Validate description length."""
        return validate_description_length(v)


class BookmarkResponse(BaseModel):
    """Schema for bookmark responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    title: str | None
    description: str | None
    tags: list[str]
    favicon: str | None
    metadata_fetched_at: datetime | None
    created_at: datetime
    updated_at: datetime
