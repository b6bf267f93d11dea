"""Service layer for bookmark write operations and metadata enrichment."""
import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate, BookmarkUpdate
from services.url_scraper import (
    DEFAULT_TITLE,
    PageMetadata,
    fetch_page_metadata,
    fetch_page_title,
)

logger = logging.getLogger(__name__)


def should_refetch(old_url: str, new_url: str | None) -> bool:
    """
    Decide whether an update needs fresh page metadata.

    Metadata belongs to a URL, so it is refetched only when a URL is submitted
    and it differs from the stored one.
    """
    return new_url is not None and new_url != old_url


def merge_created_fields(
    data: BookmarkCreate,
    metadata: PageMetadata,
    fetched_title: str | None,
) -> dict[str, Any]:
    """
    Combine user input with fetched metadata for a new bookmark.

    Non-empty user values win. The title otherwise comes from the title-only
    fetch, then the full metadata, then "Untitled".
    """
    return {
        'title': data.title or fetched_title or metadata.title or DEFAULT_TITLE,
        'description': data.description or metadata.description,
        'favicon': metadata.favicon,
    }


def merge_updated_fields(
    data: BookmarkUpdate,
    metadata: PageMetadata | None,
) -> dict[str, Any]:
    """
    Compute the fields to change on an existing bookmark.

    `metadata` is None when the URL did not change; only the submitted
    title/description/tags are applied and the stored favicon is kept. An
    empty title is ignored, while an empty description clears it.

    When the URL changed, the fetched title wins over the submitted one (falling
    back to the submitted title, then "Untitled"), but a non-empty submitted
    description wins over the fetched description.
    """
    fields: dict[str, Any] = {}
    if data.tags is not None:
        fields['tags'] = data.tags

    if metadata is None:
        if data.title:
            fields['title'] = data.title
        if data.description is not None:
            fields['description'] = data.description
        return fields

    fields['title'] = metadata.title or data.title or DEFAULT_TITLE
    fields['description'] = data.description or metadata.description
    fields['favicon'] = metadata.favicon
    return fields


async def create_bookmark(
    db: AsyncSession,
    user_id: int,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a new bookmark for a user with automatic metadata enrichment.

    Flow:
    1. Fetch the page for title/description/favicon (always)
    2. If the user gave no title, fetch the page title with the shorter budget,
       concurrently with step 1
    3. Merge, user values taking precedence when non-empty
    4. Stamp metadata_fetched_at

    Enrichment is best-effort - failures don't block bookmark creation.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    settings = get_settings()
    url_str = str(data.url)

    if data.title:
        metadata = await fetch_page_metadata(url_str, settings.metadata_fetch_timeout)
        fetched_title = None
    else:
        metadata, fetched_title = await asyncio.gather(
            fetch_page_metadata(url_str, settings.metadata_fetch_timeout),
            fetch_page_title(url_str, settings.title_fetch_timeout),
        )

    bookmark = Bookmark(
        user_id=user_id,
        url=url_str,
        tags=data.tags,
        metadata_fetched_at=datetime.now(UTC),
        **merge_created_fields(data, metadata, fetched_title),
    )
    db.add(bookmark)
    await db.flush()
    await db.refresh(bookmark)

    logger.info(
        "Created bookmark %s for user %s (title=%r, favicon=%s)",
        bookmark.id,
        user_id,
        bookmark.title,
        bookmark.favicon is not None,
    )
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> Bookmark | None:
    """Get a bookmark by ID, scoped to user. Returns None if not found or wrong user."""
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == user_id,
        ),
    )
    return result.scalar_one_or_none()


async def update_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
    data: BookmarkUpdate,
) -> Bookmark | None:
    """
    Update a bookmark. Returns None if not found or wrong user.

    Page metadata is refetched only when the URL changes (see should_refetch);
    in that case metadata_fetched_at is refreshed too.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    new_url = str(data.url) if data.url is not None else None
    metadata = None
    if should_refetch(bookmark.url, new_url):
        logger.info("URL changed for bookmark %s, refetching metadata for %s", bookmark.id, new_url)
        metadata = await fetch_page_metadata(new_url, get_settings().metadata_fetch_timeout)
        bookmark.url = new_url
        bookmark.metadata_fetched_at = datetime.now(UTC)

    for field, value in merge_updated_fields(data, metadata).items():
        setattr(bookmark, field, value)
    bookmark.updated_at = datetime.now(UTC)

    await db.flush()
    await db.refresh(bookmark)
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    user_id: int,
    bookmark_id: int,
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    await db.delete(bookmark)
    await db.flush()
    return True
