"""URL scraping service for fetching pages and extracting bookmark metadata."""
import asyncio
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)
METADATA_TIMEOUT = 10.0
TITLE_TIMEOUT = 5.0

DEFAULT_TITLE = 'Untitled'
DEFAULT_FAVICON = '/favicon.ico'
MAX_TITLE_LENGTH = 200
MAX_SHORT_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_CONTENT_DESCRIPTION_LENGTH = 300
MIN_CONTENT_DESCRIPTION_LENGTH = 20

# Site names are usually appended after one of these, e.g. "Post Title | Blog"
TITLE_SEPARATORS = re.compile(r'[·|\-]')
WHITESPACE = re.compile(r'\s+')

CONTENT_DESCRIPTION_SELECTORS = (
    '.description',
    '.summary',
    '.intro',
    '.lead',
    'h1 + p',
    'h2 + p',
    '.content p:first-of-type',
    'main p:first-of-type',
    'article p:first-of-type',
)
FAVICON_SELECTORS = (
    'link[rel="icon"]',
    'link[rel="shortcut icon"]',
    'link[rel="apple-touch-icon"]',
)


@dataclass
class FetchError:
    """Why a fetch failed, and for which URL."""

    url: str
    reason: str

    def __str__(self) -> str:
        return f"{self.reason} ({self.url})"


@dataclass
class FetchResult:
    """Result of fetching a URL (raw HTML before extraction)."""

    html: str | None
    final_url: str
    status_code: int | None
    content_type: str | None
    error: FetchError | None

    @property
    def ok(self) -> bool:
        """True when the fetch produced HTML."""
        return self.error is None and self.html is not None


@dataclass
class PageMetadata:
    """Title, description and favicon derived from a page."""

    title: str | None
    description: str
    favicon: str | None
    error: str | None = None

    @classmethod
    def empty(cls, error: str | None = None) -> 'PageMetadata':
        """Metadata used when the page could not be fetched."""
        return cls(title=None, description='', favicon=None, error=error)


def _failed(url: str, reason: str, status_code: int | None = None,
            content_type: str | None = None) -> FetchResult:
    return FetchResult(
        html=None,
        final_url=url,
        status_code=status_code,
        content_type=content_type,
        error=FetchError(url=url, reason=reason),
    )


async def fetch_url(url: str, timeout: float = METADATA_TIMEOUT) -> FetchResult:  # noqa: ASYNC109
    """
    Fetch HTML content from a URL.

    Best-effort fetch that returns error info on failure rather than raising.
    Follows redirects and captures the final URL. Any 2xx body is returned
    whatever its content type; extraction falls back to defaults for pages
    that are not HTML. The whole request, including reading the body, is
    bounded by `timeout`; there are no retries.

    Args:
        url:
            Absolute URL to fetch. Not validated beyond what httpx needs to connect.
        timeout:
            Request timeout in seconds.

    Returns:
        FetchResult containing HTML content, or a FetchError describing the failure.
    """
    try:
        async with asyncio.timeout(timeout):
            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=timeout,
                headers={'User-Agent': USER_AGENT},
            ) as client:
                response = await client.get(url)

                final_url = str(response.url)
                content_type = response.headers.get('content-type', '')

                if not 200 <= response.status_code < 300:  # noqa: PLR2004
                    return _failed(
                        url,
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        content_type=content_type,
                    )

                return FetchResult(
                    html=response.text,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=None,
                )
    except (TimeoutError, httpx.TimeoutException):
        return _failed(url, "Request timed out")
    except (httpx.DecodingError, UnicodeDecodeError) as e:
        return _failed(url, f"Malformed response: {e}")
    except httpx.RequestError as e:
        return _failed(url, f"Request failed: {e}")


# --- candidate selectors -------------------------------------------------------------
#
# Each candidate takes the parsed document and returns a value or None. Chains are
# evaluated lazily by first_match, so later (more expensive) rules only run when needed.

Candidate = Callable[[BeautifulSoup], str | None]


def first_match(soup: BeautifulSoup, candidates: Iterable[Candidate]) -> str | None:
    """Return the first candidate value that is non-empty after stripping."""
    for candidate in candidates:
        value = candidate(soup)
        if value and value.strip():
            return value
    return None


def meta_content(**attrs: str) -> Candidate:
    """Candidate reading the content attribute of the first matching <meta> tag."""
    def candidate(soup: BeautifulSoup) -> str | None:
        tag = soup.find('meta', attrs=attrs)
        if tag is None:
            return None
        content = tag.get('content')
        return content if isinstance(content, str) else None
    return candidate


def title_tag_text(soup: BeautifulSoup) -> str | None:
    """Text of the first <title> element."""
    tag = soup.find('title')
    return tag.get_text() if tag is not None else None


def content_text(selector: str) -> Candidate:
    """
    Candidate reading the text of the first element matching a CSS selector.

    Only accepted when the trimmed text is longer than
    MIN_CONTENT_DESCRIPTION_LENGTH; truncated to MAX_CONTENT_DESCRIPTION_LENGTH.
    """
    def candidate(soup: BeautifulSoup) -> str | None:
        element = soup.select_one(selector)
        if element is None:
            return None
        text = element.get_text().strip()
        if len(text) <= MIN_CONTENT_DESCRIPTION_LENGTH:
            return None
        return text[:MAX_CONTENT_DESCRIPTION_LENGTH]
    return candidate


def link_href(selector: str) -> Candidate:
    """Candidate reading the href of the first <link> matching a CSS selector."""
    def candidate(soup: BeautifulSoup) -> str | None:
        element = soup.select_one(selector)
        if element is None:
            return None
        href = element.get('href')
        return href if isinstance(href, str) else None
    return candidate


def literal(value: str) -> Candidate:
    """Candidate that always yields `value`; terminates a chain."""
    return lambda _soup: value


TITLE_CHAIN: tuple[Candidate, ...] = (
    meta_content(property='og:title'),
    meta_content(name='twitter:title'),
    title_tag_text,
    literal(DEFAULT_TITLE),
)

DESCRIPTION_CHAIN: tuple[Candidate, ...] = (
    meta_content(property='og:description'),
    meta_content(name='description'),
    meta_content(name='twitter:description'),
    meta_content(itemprop='description'),
    content_text('p'),
    *(content_text(selector) for selector in CONTENT_DESCRIPTION_SELECTORS),
)

FAVICON_CHAIN: tuple[Candidate, ...] = (
    *(link_href(selector) for selector in FAVICON_SELECTORS),
    literal(DEFAULT_FAVICON),
)


# --- sanitization --------------------------------------------------------------------

def clean_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    """
    Strip a trailing site name from a title, then truncate and trim it.

    Everything from the first '·', '|' or '-' onwards is dropped.
    """
    return TITLE_SEPARATORS.split(title, maxsplit=1)[0][:max_length].strip()


def clean_description(description: str) -> str:
    """Collapse whitespace (including newlines), trim, and truncate to 500 characters."""
    return WHITESPACE.sub(' ', description).strip()[:MAX_DESCRIPTION_LENGTH]


def resolve_favicon(favicon: str, source_url: str) -> str:
    """
    Make a favicon reference absolute.

    Values that already carry a scheme are returned unchanged. Anything else is
    resolved against the origin of `source_url` (any user:password part is
    dropped); <base> tags are ignored.
    """
    if urlparse(favicon).scheme:
        return favicon
    parsed = urlparse(source_url)
    host = parsed.hostname or ''
    if ':' in host:
        host = f"[{host}]"
    origin = f"{parsed.scheme}://{host}"
    if parsed.port is not None:
        origin = f"{origin}:{parsed.port}"
    return urljoin(origin, favicon)


# --- extraction ----------------------------------------------------------------------

def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, 'lxml')


def extract_page_metadata(html: str, source_url: str) -> PageMetadata:
    """
    Extract title, description and favicon from HTML.

    Pure function with no I/O. Never raises for malformed markup; each field
    degrades to its default independently.

    Title priority: og:title, twitter:title, <title>, "Untitled".
    Description priority: og:description, description, twitter:description,
    itemprop=description, first <p>, then structural selectors, "".
    Favicon priority: rel=icon, rel="shortcut icon", rel=apple-touch-icon, /favicon.ico.

    Args:
        html:
            Raw HTML string to parse.
        source_url:
            URL the HTML was fetched from; relative favicons resolve against its origin.

    Returns:
        PageMetadata with sanitized values.
    """
    soup = _parse(html)

    title = first_match(soup, TITLE_CHAIN)
    description = first_match(soup, DESCRIPTION_CHAIN) or ''
    favicon = first_match(soup, FAVICON_CHAIN) or DEFAULT_FAVICON

    return PageMetadata(
        title=clean_title(title) if title is not None else None,
        description=clean_description(description),
        favicon=resolve_favicon(favicon.strip(), source_url),
    )


def extract_title(html: str, max_length: int = MAX_SHORT_TITLE_LENGTH) -> str | None:
    """
    Extract only the <title> text, cleaned the same way as full extraction.

    Returns None when the page has no usable title.
    """
    title = title_tag_text(_parse(html))
    if not title:
        return None
    return clean_title(title.strip(), max_length) or None


# --- enrichment entry points ---------------------------------------------------------

async def fetch_page_metadata(url: str, timeout: float = METADATA_TIMEOUT) -> PageMetadata:  # noqa: ASYNC109
    """
    Fetch a URL and extract its metadata.

    This is the full enrichment used when a bookmark is created or its URL
    changes. Fetch failures are converted into PageMetadata.empty() so callers
    never have to handle an exception.
    """
    result = await fetch_url(url, timeout)

    if not result.ok:
        logger.warning("Failed to fetch metadata for %s: %s", url, result.error)
        return PageMetadata.empty(error=str(result.error))

    metadata = extract_page_metadata(result.html, url)
    logger.info(
        "Fetched metadata for %s: title=%r description_length=%d favicon=%s",
        url,
        metadata.title,
        len(metadata.description),
        metadata.favicon,
    )
    return metadata


async def fetch_page_title(url: str, timeout: float = TITLE_TIMEOUT) -> str | None:  # noqa: ASYNC109
    """Fetch a URL and return only its cleaned <title>, or None on any failure."""
    result = await fetch_url(url, timeout)

    if not result.ok:
        logger.warning("Failed to fetch title for %s: %s", url, result.error)
        return None

    return extract_title(result.html)
