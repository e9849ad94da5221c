"""Frontier crawler: BFS over seed URLs and the internal links they expose."""

import logging
from collections import deque
from typing import Callable, Iterable, List, Optional, Set
from urllib.parse import parse_qs, urlparse

import httpx
from playwright.async_api import Error as PlaywrightError

from app.models.audit_request import AuditInputs
from app.models.page import PageExtract
from app.models.report import ProgressEvent
from app.services.extractor import extract_page_data, failed_page_extract
from app.services.normalizer import (
    canonicalize_for_crawl_identity,
    host_of,
    is_blocked_by_robots,
    normalize_url,
    passes_scope_patterns,
)
from app.services.sitemap import resolve_allowed_hosts
from app.services.strategy import PageFetcher, select_fetcher

logger = logging.getLogger(__name__)

# Overall progress band owned by the crawl stage
CRAWL_PERCENT_START = 10
CRAWL_PERCENT_END = 60

# URL path prefixes to skip in surface coverage (common on WordPress and other CMSes)
_SKIP_PATH_PREFIXES = (
    "/wp-admin",
    "/wp-login",
    "/wp-json",
    "/wp-content",
    "/cart",
    "/checkout",
    "/my-account",
)

_SKIP_PATH_SUFFIXES = (
    ".xml",
    ".rss",
    ".atom",
    "xmlrpc.php",
    "/feed",
)
# Suffixes without trailing slash, matched against the stripped path
_SKIP_PATH_SUFFIXES_STRIPPED = tuple(s.rstrip("/") for s in _SKIP_PATH_SUFFIXES)

# Query parameters that indicate non-content pages
_SKIP_QUERY_PARAMS = {"feed", "preview", "replytocom", "add-to-cart"}


class CrawlSeedError(RuntimeError):
    """The start URL could not be fetched at all, so there is nothing to audit."""


def _should_skip(url: str) -> bool:
    """Return True for URLs that are unlikely to contain useful page content.

    Skips WordPress admin/login/API paths, feed URLs, and static asset paths.
    """
    parsed = urlparse(url)
    path = parsed.path.lower()

    if any(path.startswith(prefix) for prefix in _SKIP_PATH_PREFIXES):
        return True
    path_stripped = path.rstrip("/")
    if any(path_stripped.endswith(suffix) for suffix in _SKIP_PATH_SUFFIXES_STRIPPED):
        return True

    # Skip if any noise query param is present
    query_params = set(parse_qs(parsed.query).keys())
    if query_params & _SKIP_QUERY_PARAMS:
        return True

    return False


def _is_html(content_type: str) -> bool:
    return not content_type or "html" in content_type.lower()


def _in_scope(
    url: str,
    inputs: AuditInputs,
    allowed_hosts: Set[str],
    robots_disallow: List[str],
) -> bool:
    if host_of(url) not in allowed_hosts:
        return False
    if not passes_scope_patterns(url, inputs.include_patterns, inputs.exclude_patterns):
        return False
    if inputs.respect_robots and is_blocked_by_robots(url, robots_disallow):
        return False
    if inputs.coverage == "surface" and _should_skip(url):
        return False
    return True


async def _fetch_and_extract(url: str, fetcher: PageFetcher) -> PageExtract:
    try:
        fetched = await fetcher(url)
    except (ValueError, httpx.HTTPError, RuntimeError, PlaywrightError) as exc:
        logger.warning("Crawler: fetch failed for %s – %s", url, exc)
        return failed_page_extract(url, str(exc) or exc.__class__.__name__)

    html = fetched.html if _is_html(fetched.content_type) else ""
    return extract_page_data(
        html,
        url,
        fetched.final_url,
        fetched.status,
        fetched.headers,
        content_type=fetched.content_type,
    )


async def crawl_site(
    inputs: AuditInputs,
    seeds: Iterable[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
    robots_disallow: Optional[List[str]] = None,
    on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    fetcher: Optional[PageFetcher] = None,
) -> List[PageExtract]:
    """Crawl *seeds* breadth-first and return one record per visited URL.

    Coverage modes:

    * ``quick``   – fetch the seeds only.
    * ``surface`` – follow internal links up to ``crawl_depth``, skipping
      admin, feed and other non-content paths.
    * ``full``    – follow internal links up to ``crawl_depth`` with no
      path skip list.

    Every URL is visited once, keyed by its crawl identity (fragment and
    non-pagination query parameters removed) and by the identity of the
    URL it redirected to.  Fetch failures become records with
    ``status=None``; only a failure of the first seed raises
    :class:`CrawlSeedError`.
    """
    if inputs.coverage not in ("quick", "surface", "full"):
        raise ValueError(f"Unknown coverage mode: {inputs.coverage!r}")
    if fetcher is None:
        if client is None:
            raise ValueError("crawl_site needs either a client or a fetcher.")
        fetcher = select_fetcher(inputs, client)

    robots_disallow = robots_disallow or []
    allowed_hosts = resolve_allowed_hosts(inputs)
    max_pages = max(1, inputs.max_pages)

    queue: deque = deque()
    enqueued: Set[str] = set()
    for seed in seeds:
        normalized = normalize_url(seed)
        if not normalized:
            continue
        identity = canonicalize_for_crawl_identity(normalized)
        if identity in enqueued:
            continue
        enqueued.add(identity)
        queue.append((normalized, 0))

    if not queue:
        raise CrawlSeedError("No valid seed URL to crawl.")
    start_url = queue[0][0]

    visited: Set[str] = set()
    pages: List[PageExtract] = []

    while queue and len(pages) < max_pages:
        url, depth = queue.popleft()
        identity = canonicalize_for_crawl_identity(url)
        if identity in visited:
            continue
        visited.add(identity)

        page = await _fetch_and_extract(url, fetcher)
        if url == start_url and page.status is None:
            raise CrawlSeedError(f"Start URL {start_url} could not be fetched: {page.fetch_error}")

        final_identity = canonicalize_for_crawl_identity(page.final_url)
        if final_identity != identity:
            if final_identity in visited:
                logger.debug("Crawler: %s redirected to already visited %s", url, page.final_url)
                continue
            visited.add(final_identity)

        pages.append(page)
        if on_progress:
            span = CRAWL_PERCENT_END - CRAWL_PERCENT_START
            on_progress(
                ProgressEvent(
                    stage="crawl",
                    detail=f"{len(pages)}/{max_pages} {url}",
                    percent=CRAWL_PERCENT_START + span * len(pages) // max_pages,
                )
            )

        if inputs.coverage == "quick" or depth >= inputs.crawl_depth or not page.is_auditable:
            continue

        for outlink in page.outlinks_internal:
            link = normalize_url(outlink.target_url)
            if not link:
                continue
            link_identity = canonicalize_for_crawl_identity(link)
            if link_identity in visited or link_identity in enqueued:
                continue
            if not _in_scope(link, inputs, allowed_hosts, robots_disallow):
                logger.debug("Crawler: skipping out-of-scope URL %s", link)
                continue
            enqueued.add(link_identity)
            queue.append((link, depth + 1))

    logger.info("Crawler: visited %d pages from %s (%s coverage)", len(pages), start_url, inputs.coverage)
    return pages
