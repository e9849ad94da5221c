"""Seed discovery: start URL, robots.txt sitemap directives and sitemaps."""

import logging
from typing import Dict, List, Set
from urllib.parse import urljoin, urlparse
from xml.etree import ElementTree

import httpx

from app.models.audit_request import AuditInputs
from app.models.report import DiscoveredSeed, SeedDiscoveryResult, SeedSource
from app.services.fetcher import fetch_text
from app.services.normalizer import (
    host_of,
    is_blocked_by_robots,
    normalize_url,
    passes_scope_patterns,
)
from app.services.robots import parse_robots

logger = logging.getLogger(__name__)

# Upper bound on sitemap documents fetched per run (index files included)
MAX_SITEMAPS = 50


def parse_sitemap(xml_text: str) -> List[str]:
    """Extract all ``<loc>`` values from a sitemap or sitemap-index XML."""
    urls: List[str] = []
    try:
        root = ElementTree.fromstring(xml_text)
        ns = root.tag.split("}")[0] + "}" if root.tag.startswith("{") else ""
        for elem in root.iter(f"{ns}loc"):
            if elem.text and elem.text.strip():
                urls.append(elem.text.strip())
    except ElementTree.ParseError as exc:
        logger.warning("Failed to parse sitemap XML: %s", exc)
    return urls


def _is_sitemap_index(xml_text: str) -> bool:
    return "<sitemapindex" in xml_text


def resolve_allowed_hosts(inputs: AuditInputs) -> Set[str]:
    """Hosts the crawl may visit: configured domains, else target + focus hosts."""
    if inputs.allowed_domains:
        return {domain.lower() for domain in inputs.allowed_domains}

    hosts = {host_of(inputs.target)}
    for focus_url in [inputs.focus.primary_url, *inputs.focus.secondary_urls]:
        if not focus_url:
            continue
        normalized = normalize_url(focus_url, inputs.target)
        if normalized:
            hosts.add(host_of(normalized))
    return hosts


async def _collect_sitemap_urls(
    sitemap_url: str,
    client: httpx.AsyncClient,
    inputs: AuditInputs,
    processed: Set[str],
) -> List[str]:
    """Fetch *sitemap_url*, following sitemap-index files breadth-first."""
    found: List[str] = []
    queue: List[str] = [sitemap_url]

    while queue and len(processed) < MAX_SITEMAPS:
        current = queue.pop(0)
        if current in processed:
            continue
        processed.add(current)

        xml_text = await fetch_text(
            current,
            client,
            timeout_ms=inputs.timeout_ms,
            block_private=inputs.block_private_addresses,
        )
        if not xml_text:
            continue

        locations = parse_sitemap(xml_text)
        if _is_sitemap_index(xml_text):
            queue.extend(loc for loc in locations if loc not in processed)
            continue

        for loc in locations:
            normalized = normalize_url(loc)
            if normalized:
                found.append(normalized)

    return found


async def discover_seeds(inputs: AuditInputs, client: httpx.AsyncClient) -> SeedDiscoveryResult:
    """Build the ordered seed list for a crawl.

    The start URL always comes first; sitemap-discovered URLs that survive
    the domain, pattern and robots filters follow in sorted order.  In
    ``quick`` coverage the list is capped at ``max_pages``.
    """
    start_url = normalize_url(inputs.target)
    if not start_url:
        raise ValueError(f"Invalid target URL: {inputs.target!r}")

    robots_rules: List[str] = []
    robots_sitemaps: List[str] = []
    if inputs.respect_robots:
        robots_text = await fetch_text(
            urljoin(start_url, "/robots.txt"),
            client,
            timeout_ms=inputs.timeout_ms,
            block_private=inputs.block_private_addresses,
        )
        if robots_text:
            parsed = parse_robots(robots_text)
            robots_rules = parsed.disallow_rules
            robots_sitemaps = sorted(
                filter(None, (normalize_url(url, start_url) for url in parsed.sitemap_urls))
            )

    candidates: List[tuple] = [(url, "robots_sitemap") for url in robots_sitemaps]
    candidates.append((urljoin(start_url, "/sitemap.xml"), "default_sitemap"))
    configured = sorted(
        filter(None, (normalize_url(url, start_url) for url in inputs.sitemap_urls if url.strip()))
    )
    candidates.extend((url, "config_sitemap") for url in configured)

    source_by_sitemap: Dict[str, SeedSource] = {}
    for url, source in candidates:
        source_by_sitemap.setdefault(url, source)
    sitemaps_checked = list(source_by_sitemap)

    allowed_hosts = resolve_allowed_hosts(inputs)
    processed: Set[str] = set()
    sitemap_entries: List[str] = []
    discovered: Dict[str, SeedSource] = {start_url: "start_url"}

    for sitemap_url in sitemaps_checked:
        for loc in await _collect_sitemap_urls(sitemap_url, client, inputs, processed):
            sitemap_entries.append(loc)
            if urlparse(loc).netloc.lower() not in allowed_hosts:
                continue
            if not passes_scope_patterns(loc, inputs.include_patterns, inputs.exclude_patterns):
                continue
            if inputs.respect_robots and is_blocked_by_robots(loc, robots_rules):
                continue
            discovered.setdefault(loc, source_by_sitemap[sitemap_url])

    tail = sorted(url for url in discovered if url != start_url)
    seeds = [start_url, *tail]
    if inputs.coverage == "quick":
        seeds = seeds[: max(1, inputs.max_pages)]

    logger.info(
        "Seed discovery for %s: %d seeds, %d sitemap entries, %d robots rules",
        start_url,
        len(seeds),
        len(sitemap_entries),
        len(robots_rules),
    )

    kept = set(seeds)
    return SeedDiscoveryResult(
        seeds=seeds,
        discovered=[
            DiscoveredSeed(url=url, source=source)
            for url, source in sorted(discovered.items())
            if url in kept
        ],
        robots_disallow=robots_rules,
        sitemap_urls_checked=sitemaps_checked,
        sitemap_entries=sorted(set(sitemap_entries)),
    )
