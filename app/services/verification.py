"""Network-backed cross-page checks: broken links, canonical health, redirect chains.

All status requests run under fixed-size worker pools and resolve to failure
values instead of raising, so one bad host cannot abort a rule pass.
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import urljoin

import httpx

from app.models.page import PageExtract
from app.services.fetcher import validate_url
from app.services.normalizer import is_blocked_by_robots, is_http_url, url_key
from app.services.pool import map_with_concurrency
from app.services.status_resolver import StatusResolver

logger = logging.getLogger(__name__)

HTTP_STATUS_CONCURRENCY = 12
REDIRECT_CHAIN_CONCURRENCY = 8
MAX_REDIRECT_HOPS = 8


class LinkFailure(NamedTuple):
    source_url: str
    target_url: str
    status: Optional[int]
    error: Optional[str]


class CanonicalFailure(NamedTuple):
    canonical_url: str
    status: Optional[int]
    error: Optional[str]


class RedirectChain(NamedTuple):
    url: str
    hops: List[str]
    loop: bool

    @property
    def length(self) -> int:
        return len(self.hops)


def _is_broken(status: Optional[int]) -> bool:
    return status is None or status >= 400


def build_crawl_index(pages: List[PageExtract]) -> Dict[str, PageExtract]:
    """Map requested and final URL keys of every crawled page to its record."""
    index: Dict[str, PageExtract] = {}
    for page in pages:
        index.setdefault(url_key(page.url), page)
        index.setdefault(url_key(page.final_url), page)
    return index


async def collect_broken_links(
    pages: List[PageExtract],
    resolver: StatusResolver,
    *,
    internal: bool,
    robots_disallow: List[str],
) -> List[LinkFailure]:
    """Find link targets that answer with an error status or not at all.

    Internal targets already crawled are judged by their crawl status with
    no network call.  Targets whose path falls under a robots.txt Disallow
    rule are never requested, external ones included.  Results are sorted by
    source then target URL.
    """
    crawl_index = build_crawl_index(pages)
    failures: List[LinkFailure] = []
    remote_checks: List[Tuple[str, str]] = []
    queued = set()

    for page in pages:
        targets = page.links.internal_targets if internal else page.links.external_targets
        for target in targets:
            if not is_http_url(target):
                continue
            if is_blocked_by_robots(target, robots_disallow):
                continue
            if (page.url, target) in queued:
                continue
            queued.add((page.url, target))

            crawled = crawl_index.get(url_key(target)) if internal else None
            if crawled is not None:
                if not _is_broken(crawled.status):
                    continue
                error = crawled.fetch_error or ("unknown status" if crawled.status is None else None)
                failures.append(LinkFailure(page.url, target, crawled.status, error))
                continue

            remote_checks.append((page.url, target))

    async def check(item: Tuple[str, str]) -> Optional[LinkFailure]:
        source_url, target_url = item
        result = await resolver.resolve(target_url)
        if not _is_broken(result.status):
            return None
        return LinkFailure(source_url, target_url, result.status, result.error)

    checked = await map_with_concurrency(remote_checks, HTTP_STATUS_CONCURRENCY, check)
    failures.extend(item for item in checked if item is not None)

    logger.debug(
        "Broken %s links: %d failures over %d remote checks",
        "internal" if internal else "external",
        len(failures),
        len(remote_checks),
    )
    return sorted(failures, key=lambda item: (item.source_url, item.target_url))


async def collect_canonical_failures(
    pages: List[PageExtract],
    resolver: StatusResolver,
) -> List[CanonicalFailure]:
    """Canonical targets of auditable pages that do not answer with 2xx."""
    crawl_index = build_crawl_index(pages)
    canonical_urls = sorted(
        {page.canonical_url for page in pages if page.is_auditable and page.canonical_url and is_http_url(page.canonical_url)}
    )

    async def check(canonical_url: str) -> Optional[CanonicalFailure]:
        crawled = crawl_index.get(url_key(canonical_url))
        if crawled is not None and crawled.status is not None:
            if 200 <= crawled.status < 300:
                return None
            return CanonicalFailure(canonical_url, crawled.status, None)
        result = await resolver.resolve(canonical_url)
        if result.status is not None and 200 <= result.status < 300:
            return None
        return CanonicalFailure(canonical_url, result.status, result.error)

    checked = await map_with_concurrency(canonical_urls, HTTP_STATUS_CONCURRENCY, check)
    return [item for item in checked if item is not None]


async def walk_redirect_chain(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout_ms: int,
    max_hops: int = MAX_REDIRECT_HOPS,
    block_private: bool = True,
) -> RedirectChain:
    """Follow redirects one HEAD at a time, stopping at *max_hops* or a revisited URL.

    Each hop is validated before it is requested; the walk stops at the
    first URL that fails validation.
    """
    hops: List[str] = []
    seen = set()
    current = url
    timeout = timeout_ms / 1000

    while len(hops) < max_hops:
        if current in seen:
            return RedirectChain(url, hops, loop=True)
        seen.add(current)
        try:
            validate_url(current, block_private=block_private)
            response = await client.head(current, timeout=timeout, follow_redirects=False)
        except (ValueError, httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Redirect walk stopped at %s – %s", current, exc)
            break
        if not 300 <= response.status_code < 400:
            break
        location = response.headers.get("location")
        if not location:
            break
        current = urljoin(current, location)
        hops.append(current)

    return RedirectChain(url, hops, loop=False)


async def collect_redirect_chains(
    pages: List[PageExtract],
    client: httpx.AsyncClient,
    *,
    timeout_ms: int,
    block_private: bool = True,
) -> List[RedirectChain]:
    """Crawled URLs that needed more than one redirect hop."""
    candidates = sorted(
        {
            page.url
            for page in pages
            if page.url != page.final_url or (page.status is not None and 300 <= page.status < 400)
        }
    )

    async def check(url: str) -> Optional[RedirectChain]:
        chain = await walk_redirect_chain(url, client, timeout_ms=timeout_ms, block_private=block_private)
        return chain if chain.length > 1 or chain.loop else None

    checked = await map_with_concurrency(candidates, REDIRECT_CHAIN_CONCURRENCY, check)
    return [item for item in checked if item is not None]
