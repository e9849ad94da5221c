import json
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from app.models.page import (
    ExternalOutlink,
    HeadingItem,
    InternalOutlink,
    PageExtract,
    PageImages,
    PageLinks,
    PageSecurity,
    SchemaError,
)
from app.services.sanitizer import sanitize
from app.services.text import normalize_text

SECURITY_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-content-type-options",
    "x-frame-options",
    "referrer-policy",
)

# Images at or above this pixel area (from width/height attributes) are flagged
LARGE_IMAGE_PIXELS = 1_000_000

FIRST_VIEWPORT_CHARS = 300

GENERIC_ALT_TEXTS = {"image", "img", "photo", "picture", "banner", "zdjęcie", "zdjecie", "grafika", "obraz"}

_NAV_ANCESTOR_RE = re.compile(r"\b(nav|menu|header|footer|breadcrumbs?)\b", re.IGNORECASE)
_BRAND_SPLIT_RE = re.compile(r"[|\-–—•]")
_COPYRIGHT_RE = re.compile(r"(?:©|copyright)\s*\d{2,4}\s*(.+)$", re.IGNORECASE)
_SKIP_HREF_PREFIXES = ("#", "javascript:")

# Elements whose text forms one paragraph of main text
_BLOCK_TAGS = ["p", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "dt", "dd", "td", "th", "pre"]


def _text(value: Optional[str]) -> str:
    return normalize_text(value) or ""


def _safe_url(base_url: str, href: str) -> Optional[str]:
    try:
        resolved = urljoin(base_url, href)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return resolved


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    meta = soup.find("meta", attrs=attrs)
    if meta and meta.get("content") is not None:
        return str(meta["content"]).strip()
    return None


def _link_href(soup: BeautifulSoup, rel: str) -> Optional[str]:
    for link in soup.find_all("link", href=True):
        rels = [value.lower() for value in (link.get("rel") or [])]
        if rel in rels:
            return str(link["href"]).strip()
    return None


def _is_nav_likely(anchor: Tag) -> bool:
    """True when an ancestor's tag name, id or class looks like site navigation."""
    chain = []
    for parent in anchor.parents:
        if not isinstance(parent, Tag) or parent.name == "[document]":
            continue
        classes = " ".join(parent.get("class") or [])
        chain.append(f"{parent.name} {parent.get('id', '')} {classes}")
    return bool(_NAV_ANCESTOR_RE.search(" ".join(chain)))


def _extract_headings(soup: BeautifulSoup) -> List[HeadingItem]:
    headings = []
    for order, element in enumerate(soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]), start=1):
        headings.append(HeadingItem(level=int(element.name[1]), text=_text(element.get_text(" ")), order=order))
    return headings


def _extract_outlinks(
    soup: BeautifulSoup, final_url: str
) -> Tuple[List[InternalOutlink], List[ExternalOutlink], List[str], List[str]]:
    """Aggregate anchors into one record per distinct (target, anchor, rel, nav) tuple."""
    final_host = urlparse(final_url).netloc.lower()
    internal: Dict[tuple, int] = {}
    external: Dict[tuple, int] = {}

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
            continue
        resolved = _safe_url(final_url, href)
        if not resolved:
            continue
        parsed = urlparse(resolved)
        if parsed.scheme not in ("http", "https"):
            continue
        resolved = parsed._replace(fragment="").geturl()

        anchor_text = _text(anchor.get_text(" "))
        rel = _text(" ".join(anchor.get("rel") or []))
        if parsed.netloc.lower() == final_host:
            key = (resolved, anchor_text, rel, _is_nav_likely(anchor))
            internal[key] = internal.get(key, 0) + 1
        else:
            key = (resolved, anchor_text, rel)
            external[key] = external.get(key, 0) + 1

    outlinks_internal = [
        InternalOutlink(target_url=target, anchor_text=text, rel=rel, is_nav_likely=nav, occurrences=count)
        for (target, text, rel, nav), count in sorted(
            internal.items(), key=lambda item: (item[0][0], item[0][1], item[0][3], item[0][2])
        )
    ]
    outlinks_external = [
        ExternalOutlink(target_url=target, anchor_text=text, rel=rel, occurrences=count)
        for (target, text, rel), count in sorted(external.items(), key=lambda item: item[0])
    ]
    internal_targets = sorted({link.target_url for link in outlinks_internal})
    external_targets = sorted({link.target_url for link in outlinks_external})
    return outlinks_internal, outlinks_external, internal_targets, external_targets


def _collect_schema_types(value: Any, found: set) -> None:
    if isinstance(value, list):
        for item in value:
            _collect_schema_types(item, found)
        return
    if not isinstance(value, dict):
        return
    at_type = value.get("@type")
    if isinstance(at_type, str):
        found.add(at_type)
    elif isinstance(at_type, list):
        found.update(item for item in at_type if isinstance(item, str))
    if value.get("@graph"):
        _collect_schema_types(value["@graph"], found)


def _parse_jsonld(soup: BeautifulSoup) -> Tuple[List[str], List[Dict[str, Any]], List[str], List[str], List[SchemaError]]:
    raw_blocks: List[str] = []
    parsed_blocks: List[Dict[str, Any]] = []
    failures: List[str] = []
    errors: List[SchemaError] = []
    types: set = set()

    for index, script in enumerate(soup.find_all("script", attrs={"type": "application/ld+json"})):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        raw_blocks.append(raw)
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            failures.append(str(exc))
            errors.append(SchemaError(message=str(exc), pointer=f"script[type=application/ld+json][{index}]"))
            continue
        if isinstance(parsed, dict):
            parsed_blocks.append(parsed)
        elif isinstance(parsed, list):
            parsed_blocks.extend(item for item in parsed if isinstance(item, dict))
        _collect_schema_types(parsed, types)

    return raw_blocks, parsed_blocks, sorted(types), failures, errors


def _extract_images(soup: BeautifulSoup, final_url: str) -> PageImages:
    images = soup.find_all("img")
    missing_alt = 0
    generic_alt = 0
    large: set = set()

    for img in images:
        alt = img.get("alt")
        if alt is None or not str(alt).strip():
            missing_alt += 1
        else:
            normalized = _text(str(alt)).lower()
            if normalized in GENERIC_ALT_TEXTS or len(normalized) < 4:
                generic_alt += 1

        src = str(img.get("src") or "").strip()
        if not src:
            continue
        try:
            width = int(str(img.get("width", "")).strip())
            height = int(str(img.get("height", "")).strip())
        except ValueError:
            continue
        if width * height >= LARGE_IMAGE_PIXELS:
            resolved = _safe_url(final_url, src)
            if resolved:
                large.add(resolved)

    return PageImages(
        count=len(images),
        missing_alt_count=missing_alt,
        generic_alt_count=generic_alt,
        large_image_candidates=sorted(large),
    )


def _mixed_content_candidates(soup: BeautifulSoup, final_url: str) -> List[str]:
    if not final_url.startswith("https://"):
        return []
    candidates = set()
    for tag_name, attr in (("img", "src"), ("script", "src"), ("link", "href"), ("iframe", "src")):
        for element in soup.find_all(tag_name, attrs={attr: True}):
            raw = str(element[attr]).strip()
            if not raw:
                continue
            resolved = _safe_url(final_url, raw)
            if resolved and resolved.startswith("http://"):
                candidates.add(resolved)
    return sorted(candidates)


def _paragraphs(node: Tag) -> List[str]:
    paragraphs = []
    for block in node.find_all(_BLOCK_TAGS):
        # Outer blocks are represented by their innermost block children
        if block.find(_BLOCK_TAGS):
            continue
        text = _text(block.get_text(" "))
        if text:
            paragraphs.append(text)
    return paragraphs


def _extract_main_text(html: str) -> str:
    """Return main content as paragraphs separated by blank lines."""
    soup = sanitize(html)

    best_node = None
    best_length = 0
    for selector in ("main", "article", "#content"):
        for node in soup.select(selector):
            length = len(_text(node.get_text(" ")))
            if length > best_length:
                best_node, best_length = node, length

    if best_node is None:
        for selector in ("section", "div", "body"):
            for node in soup.select(selector):
                length = len(_text(node.get_text(" ")))
                if length > best_length:
                    best_node, best_length = node, length

    if best_node is None:
        return _text(soup.get_text(" "))

    paragraphs = _paragraphs(best_node)
    if not paragraphs:
        return _text(best_node.get_text(" "))
    return "\n\n".join(paragraphs)


def _brand_signals(
    soup: BeautifulSoup, title_text: str, jsonld_parsed: List[Dict[str, Any]]
) -> List[str]:
    signals = set()

    for segment in _BRAND_SPLIT_RE.split(title_text):
        normalized = _text(segment)
        if 2 <= len(normalized) <= 80:
            signals.add(normalized)

    footer = soup.find("footer")
    footer_text = _text(footer.get_text(" ")) if footer else ""
    match = _COPYRIGHT_RE.search(footer_text)
    if match:
        candidate = _text(match.group(1))
        if 2 <= len(candidate) <= 80:
            signals.add(candidate)

    for img in soup.find_all("img", alt=True):
        alt = _text(str(img["alt"]))
        if alt and "logo" in alt.lower() and len(alt) <= 80:
            signals.add(alt)

    def collect_org_name(value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                collect_org_name(item)
            return
        if not isinstance(value, dict):
            return
        at_type = value.get("@type")
        types = at_type if isinstance(at_type, list) else [at_type]
        if any(t in ("Organization", "LocalBusiness") for t in types) and isinstance(value.get("name"), str):
            name = _text(value["name"])
            if 2 <= len(name) <= 80:
                signals.add(name)
        if value.get("@graph"):
            collect_org_name(value["@graph"])

    for block in jsonld_parsed:
        collect_org_name(block)

    return sorted(signals)


def _links_without_accessible_name(soup: BeautifulSoup) -> int:
    count = 0
    for anchor in soup.find_all("a", href=True):
        if _text(anchor.get_text(" ")) or _text(anchor.get("aria-label")) or _text(anchor.get("title")):
            continue
        # An image with alt text names the link
        if any(_text(img.get("alt")) for img in anchor.find_all("img")):
            continue
        count += 1
    return count


def extract_page_data(
    html: str,
    requested_url: str,
    final_url: str,
    status: Optional[int],
    headers: Optional[Dict[str, str]] = None,
    content_type: Optional[str] = None,
) -> PageExtract:
    """Turn a fetched document into a :class:`PageExtract` record."""
    soup = BeautifulSoup(html or "", "lxml")
    normalized_headers = {key.lower(): value for key, value in (headers or {}).items()}

    title_tag = soup.find("title")
    title = normalize_text(title_tag.get_text()) if title_tag else None
    title_text = title or ""

    meta_description = _meta_content(soup, name="description")
    meta_robots = _meta_content(soup, name="robots")
    canonical = _link_href(soup, "canonical")
    canonical_url = (_safe_url(final_url, canonical) or canonical) if canonical else None

    og_image = _meta_content(soup, property="og:image")
    if og_image:
        og_image = _safe_url(final_url, og_image) or og_image

    hreflang_links = sorted(
        _safe_url(final_url, str(link["href"]).strip()) or str(link["href"]).strip()
        for link in soup.find_all("link", href=True, hreflang=True)
        if "alternate" in [value.lower() for value in (link.get("rel") or [])] and str(link["href"]).strip()
    )

    headings = _extract_headings(soup)
    outlinks_internal, outlinks_external, internal_targets, external_targets = _extract_outlinks(soup, final_url)
    raw_blocks, parsed_blocks, schema_types, parse_failures, schema_errors = _parse_jsonld(soup)

    main_text = _extract_main_text(html or "")
    flat_main_text = _text(main_text)

    html_tag = soup.find("html")
    html_lang = str(html_tag.get("lang", "")).strip() if html_tag else ""

    security_present = [header for header in SECURITY_HEADERS if normalized_headers.get(header)]
    security_missing = [header for header in SECURITY_HEADERS if not normalized_headers.get(header)]

    return PageExtract(
        url=requested_url,
        final_url=final_url,
        status=status,
        content_type=content_type or normalized_headers.get("content-type"),
        title=title,
        title_text=title_text,
        title_length=len(title_text),
        meta_description=meta_description,
        meta_description_text=meta_description or "",
        meta_description_length=len(meta_description or ""),
        meta_robots=meta_robots,
        meta_robots_content=meta_robots or "",
        x_robots_tag=normalized_headers.get("x-robots-tag"),
        canonical=canonical,
        canonical_url=canonical_url,
        hreflang_links=hreflang_links,
        og_title=_meta_content(soup, property="og:title"),
        og_description=_meta_content(soup, property="og:description"),
        og_image=og_image,
        html_lang=html_lang or None,
        headings_outline=headings,
        heading_text_concat=" ".join(item.text for item in headings if item.text),
        links=PageLinks(
            internal_count=len(internal_targets),
            external_count=len(external_targets),
            internal_targets=internal_targets,
            external_targets=external_targets,
        ),
        images=_extract_images(soup, final_url),
        security=PageSecurity(
            is_https=final_url.startswith("https://"),
            mixed_content_candidates=_mixed_content_candidates(soup, final_url),
            security_headers_present=security_present,
            security_headers_missing=security_missing,
        ),
        jsonld_raw_blocks=raw_blocks,
        jsonld_parsed=parsed_blocks,
        schema_types_detected=schema_types,
        jsonld_parse_failures=parse_failures,
        schema_errors=schema_errors,
        main_text=main_text,
        word_count_main=len(flat_main_text.split()),
        first_viewport_text=flat_main_text[:FIRST_VIEWPORT_CHARS],
        brand_signals=_brand_signals(soup, title_text, parsed_blocks),
        links_without_accessible_name_count=_links_without_accessible_name(soup),
        outlinks_internal=outlinks_internal,
        outlinks_external=outlinks_external,
    )


def failed_page_extract(url: str, error: str, status: Optional[int] = None) -> PageExtract:
    """Record for a URL that could not be fetched or parsed."""
    return PageExtract(
        url=url,
        final_url=url,
        status=status,
        fetch_error=error,
        security=PageSecurity(is_https=url.startswith("https://")),
    )
