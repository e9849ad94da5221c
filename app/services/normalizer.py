"""URL normalisation utilities shared by the crawler, link graph and rules."""

import fnmatch
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse

# Query parameters that identify distinct pages of a paginated listing
PAGINATION_PARAMS = ("p", "page", "paged")

ALLOWED_SCHEMES = {"http", "https"}


def normalize_url(raw: str, base_url: Optional[str] = None) -> Optional[str]:
    """Return an absolute http(s) URL without fragment, or *None* when unusable."""
    if raw is None:
        return None
    try:
        absolute = urljoin(base_url, raw.strip()) if base_url else raw.strip()
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        return None
    path = parsed.path or "/"
    return parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=parsed.netloc.lower(),
        path=path,
        fragment="",
    ).geturl()


def url_key(raw: str) -> str:
    """Comparison key for a URL; falls back to the raw string when unparseable."""
    return normalize_url(raw) or raw


def canonicalize_for_crawl_identity(raw: str) -> str:
    """Identity used by the crawler to decide whether a URL was already visited.

    Only pagination parameters survive (sorted by key, repeated values kept);
    tracking and sort parameters collapse onto the same page.
    """
    normalized = normalize_url(raw) or raw
    parsed = urlparse(normalized)
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key in PAGINATION_PARAMS
    ]
    kept.sort(key=lambda item: item[0])
    return parsed._replace(query=urlencode(kept), fragment="").geturl()


def dedup_alias_key(raw: str) -> str:
    """Like :func:`canonicalize_for_crawl_identity` but treats ``?page=1`` as the bare path."""
    identity = canonicalize_for_crawl_identity(raw)
    parsed = urlparse(identity)
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if value != "1"
    ]
    return parsed._replace(query=urlencode(kept)).geturl()


def host_of(url: str) -> str:
    try:
        return urlparse(url).netloc.lower()
    except ValueError:
        return ""


def is_http_url(value: str) -> bool:
    try:
        return urlparse(value).scheme.lower() in ALLOWED_SCHEMES
    except ValueError:
        return False


def is_root_path(url: str) -> bool:
    try:
        return urlparse(url).path in ("", "/")
    except ValueError:
        return False


def path_depth(url: str) -> int:
    return len([segment for segment in urlparse(url).path.split("/") if segment])


def is_blocked_by_robots(url: str, rules: Iterable[str]) -> bool:
    """Return True when the URL path starts with any robots ``Disallow`` rule."""
    rules = list(rules)
    if not rules:
        return False
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return False
    return any(path.startswith(rule) for rule in rules)


def matches_pattern(url: str, pattern: str) -> bool:
    """Glob match when *pattern* has wildcards, substring match otherwise."""
    pattern = pattern.strip()
    if not pattern:
        return False
    if any(char in pattern for char in "*?["):
        return fnmatch.fnmatchcase(url, pattern)
    return pattern in url


def passes_scope_patterns(url: str, include: List[str], exclude: List[str]) -> bool:
    include = [p for p in include if p.strip()]
    if any(matches_pattern(url, pattern) for pattern in exclude):
        return False
    if include and not any(matches_pattern(url, pattern) for pattern in include):
        return False
    return True
