"""Deterministic rule engine.

Per-page checks run synchronously over each :class:`PageExtract`; site
checks look across pages; network checks request link, canonical and
redirect targets under bounded worker pools.  Every check is isolated:
an exception inside one is logged and contributes no issues.
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional
from urllib.parse import urlparse

import httpx

from app.models.issue import Evidence, Issue
from app.models.page import PageExtract
from app.models.rule_context import RuleContext
from app.services.deduplicator import find_repeated_blocks
from app.services.fetcher import build_client
from app.services.link_graph import AnchorStats, anchor_stats_by_target
from app.services.normalizer import (
    dedup_alias_key,
    is_blocked_by_robots,
    is_root_path,
    matches_pattern,
    path_depth,
    url_key,
)
from app.services.status_resolver import StatusResolver
from app.services.text import count_top_keyword_repeat, jaccard_similarity, normalize_for_compare, normalize_text
from app.services.verification import (
    collect_broken_links,
    collect_canonical_failures,
    collect_redirect_chains,
)

logger = logging.getLogger(__name__)

TITLE_MIN, TITLE_MAX, TITLE_HARD_MAX = 20, 60, 70
DESCRIPTION_MIN, DESCRIPTION_MAX, DESCRIPTION_HARD_MAX = 70, 160, 200
TITLE_H1_MIN_SIMILARITY = 0.25
HEADING_DUPLICATE_SIMILARITY = 0.85
SPAMMY_REPEAT_COUNT = 4
SPAMMY_REPEAT_RATIO = 0.22
NAV_ONLY_INLINKS_RATIO = 0.5
MAX_SITEMAP_EVIDENCE = 10
SAMPLE_TEXT_CHARS = 180

DEFAULT_SERVICE_PATH_PATTERNS = (
    "/service/",
    "/services/",
    "/offer/",
    "/oferta/",
    "/psychoterapia/",
    "/psychiatria/",
    "/terapia-",
)

SECTION_KEYWORDS = {
    "for_who": ("dla kogo", "kiedy", "wskazania", "who is it for", "for whom", "who we help", "when to"),
    "process": ("jak wygląda", "przebieg", "etapy", "how it works", "process", "steps", "what to expect"),
    "pricing_or_logistics": ("cennik", "koszt", "czas", "umów", "rezerwacja", "price", "pricing", "cost", "booking", "duration"),
    "faq": ("faq", "pytania", "questions"),
}

ORG_SCHEMA_TYPES = ("Organization", "LocalBusiness")

_META_NOINDEX_RE = re.compile(r"(^|[\s,])noindex([\s,]|$)", re.IGNORECASE)
_HEADER_NOINDEX_RE = re.compile(r"(^|[\s,;:])noindex([\s,;]|$)", re.IGNORECASE)


class RuleSpec(NamedTuple):
    category: str
    severity: str
    rank: int
    title: str
    description: str
    recommendation: str


RULES: Dict[str, RuleSpec] = {
    "page_not_available": RuleSpec(
        "indexability", "warning", 8,
        "Page is not available for indexing",
        "URL returned a non-2xx status, so on-page SEO checks were skipped.",
        "If this URL should rank, restore it with HTTP 200. If removed intentionally, "
        "update internal links, sitemap and canonicals to point to active pages.",
    ),
    "missing_title": RuleSpec(
        "seo", "error", 9,
        "Missing <title>",
        "Page does not define a title tag.",
        "Add a unique, descriptive <title> tag.",
    ),
    "title_length_out_of_range": RuleSpec(
        "seo", "warning", 6,
        "Title length out of range",
        f"Title length should be between {TITLE_MIN} and {TITLE_MAX} characters.",
        "Adjust title length to keep it concise and descriptive.",
    ),
    "meta_description_missing": RuleSpec(
        "serp", "warning", 5,
        "Meta description missing",
        "Page does not define a meta description.",
        "Add a concise meta description aligned with search intent.",
    ),
    "description_length_out_of_range": RuleSpec(
        "serp", "warning", 4,
        "Description length out of range",
        f"Meta description length should be between {DESCRIPTION_MIN} and {DESCRIPTION_MAX} characters.",
        "Adjust description length to improve snippet quality.",
    ),
    "meta_description_spammy": RuleSpec(
        "serp", "notice", 3,
        "Meta description may look spammy",
        "Meta description has unusually repetitive keyword usage.",
        "Rewrite description with natural language and lower repetition.",
    ),
    "title_h1_mismatch": RuleSpec(
        "serp", "warning", 6,
        "Title and H1 semantic mismatch",
        "Title and H1 likely target different intent or topic.",
        "Align <title> and H1 around the same primary intent and phrasing.",
    ),
    "title_overwrite_risk": RuleSpec(
        "serp", "notice", 3,
        "Potential title rewrite risk",
        "Heading structure may increase risk of search snippet title rewrite.",
        "Use one clear H1 and reduce near-duplicate heading fragments above the fold.",
    ),
    "missing_h1": RuleSpec(
        "content", "warning", 6,
        "Missing H1 heading",
        "Page does not include an H1 heading.",
        "Add a single H1 that reflects the page topic.",
    ),
    "multiple_h1": RuleSpec(
        "content", "warning", 5,
        "Multiple H1 headings",
        "Page has more than one H1 heading.",
        "Use one H1 and move additional section titles to H2/H3.",
    ),
    "heading_level_skips": RuleSpec(
        "content", "notice", 3,
        "Heading level skips detected",
        "Heading levels skip hierarchy steps (e.g. H2 to H4).",
        "Maintain consistent heading hierarchy for readability and structure.",
    ),
    "missing_canonical": RuleSpec(
        "seo", "notice", 4,
        "Missing canonical URL",
        "Page does not define rel=canonical.",
        "Add rel=canonical pointing to the preferred URL.",
    ),
    "canonical_mismatch": RuleSpec(
        "seo", "warning", 6,
        "Canonical mismatch",
        "Canonical URL differs from the fetched final URL.",
        "Align the canonical URL with the intended primary URL.",
    ),
    "meta_noindex": RuleSpec(
        "indexability", "error", 10,
        "Meta robots contains noindex",
        "Page is marked as non-indexable by meta robots.",
        "Remove noindex if the page should appear in search results.",
    ),
    "robots_meta_xrobots_conflict": RuleSpec(
        "indexation_conflicts", "warning", 8,
        "Meta robots and X-Robots-Tag conflict",
        "Meta robots and X-Robots-Tag header send conflicting indexation directives.",
        "Align meta robots and X-Robots-Tag to a single indexation intent.",
    ),
    "blocked_by_robots": RuleSpec(
        "indexability", "warning", 7,
        "Blocked by robots.txt",
        "URL appears blocked by robots.txt disallow rules.",
        "Adjust robots rules if this URL should be crawlable.",
    ),
    "non_200_indexable": RuleSpec(
        "indexability", "warning", 7,
        "Indexable page is not HTTP 200",
        "Page appears indexable but returns a non-200 status.",
        "Serve indexable pages with HTTP 200.",
    ),
    "missing_section_for_who": RuleSpec(
        "intent", "notice", 3,
        "Missing section: for who / indications",
        "Service page lacks a visible section clarifying who the service is for.",
        "Add a section clarifying for whom the service is intended and when to use it.",
    ),
    "missing_section_process": RuleSpec(
        "intent", "notice", 3,
        "Missing section: process",
        "Service page does not explain the process clearly.",
        "Add process details (steps, what to expect, timeline).",
    ),
    "missing_section_pricing_or_logistics": RuleSpec(
        "intent", "notice", 2,
        "Missing section: pricing/logistics",
        "Service page does not clearly cover cost, duration, or booking logistics.",
        "Add practical information such as price range, session duration, and booking method.",
    ),
    "missing_section_faq": RuleSpec(
        "intent", "notice", 2,
        "Missing FAQ section",
        "Service page lacks FAQ-style Q&A coverage.",
        "Add an FAQ section addressing common service questions and concerns.",
    ),
    "thin_content": RuleSpec(
        "content_quality", "warning", 5,
        "Thin main content",
        "Main content appears too short for the detected page type.",
        "Expand core content with concrete, intent-aligned sections and examples.",
    ),
    "images_missing_alt": RuleSpec(
        "content", "warning", 5,
        "Images missing alt text",
        "Page has images without alt attributes.",
        "Add descriptive alt text to important images.",
    ),
    "images_alt_generic": RuleSpec(
        "a11y", "notice", 2,
        "Generic or missing image alt text",
        "Image alt text quality is weak (missing and/or likely generic).",
        "Use concise, descriptive alt text that reflects image meaning in context.",
    ),
    "invalid_jsonld": RuleSpec(
        "schema", "warning", 7,
        "Invalid JSON-LD detected",
        "At least one JSON-LD block could not be parsed.",
        "Fix JSON syntax and validate structured data.",
    ),
    "missing_org_schema": RuleSpec(
        "schema", "notice", 3,
        "Missing organization schema",
        "Organization-like schema was not detected.",
        "Add Organization or LocalBusiness structured data where relevant.",
    ),
    "missing_breadcrumb_schema": RuleSpec(
        "schema", "notice", 2,
        "Missing breadcrumb schema on deep page",
        "Deep page does not expose BreadcrumbList schema.",
        "Add BreadcrumbList schema for deeper content pages.",
    ),
    "org_schema_incomplete": RuleSpec(
        "schema_quality", "notice", 4,
        "Organization schema is incomplete",
        "Organization/LocalBusiness schema is missing required minimum fields.",
        "Add minimum fields: name, url, logo for organization-like schema objects.",
    ),
    "breadcrumb_schema_invalid": RuleSpec(
        "schema_quality", "warning", 6,
        "Breadcrumb schema appears invalid",
        "BreadcrumbList schema is missing required item chain fields.",
        "Provide a complete itemListElement chain with url and name per breadcrumb item.",
    ),
    "schema_blocked_or_noindex_conflict": RuleSpec(
        "schema_quality", "notice", 4,
        "Schema present on blocked/noindex page",
        "Structured data is present, but the page is blocked or marked noindex.",
        "Resolve indexation status first or limit schema to pages intended for indexing.",
    ),
    "https_missing": RuleSpec(
        "security", "error", 8,
        "HTTPS missing",
        "Page is served over a non-HTTPS URL.",
        "Redirect traffic to HTTPS and enforce secure transport.",
    ),
    "mixed_content": RuleSpec(
        "security", "warning", 6,
        "Mixed content candidates detected",
        "HTTPS page references HTTP assets.",
        "Serve all assets via HTTPS.",
    ),
    "missing_security_headers": RuleSpec(
        "security", "warning", 5,
        "Missing security headers",
        "One or more recommended security headers are missing.",
        "Add baseline security headers at the server or CDN layer.",
    ),
    "missing_html_lang": RuleSpec(
        "a11y", "notice", 2,
        "Missing html[lang]",
        "The root <html> element does not declare a language.",
        "Set html[lang] to the primary language of page content.",
    ),
    "links_without_accessible_name": RuleSpec(
        "a11y", "notice", 2,
        "Links without accessible name",
        "One or more links are missing visible text and accessibility labels.",
        "Add descriptive anchor text or aria-label/title for unlabeled links.",
    ),
    "orphan_page": RuleSpec(
        "internal_links", "warning", 6,
        "Orphan page",
        "Page has no internal inlinks.",
        "Add contextual internal links from relevant pages.",
    ),
    "near_orphan_page": RuleSpec(
        "internal_links", "notice", 4,
        "Near-orphan page",
        "Page has exactly one internal inlink.",
        "Increase internal link support with intent-relevant anchors.",
    ),
    "excessive_nav_only_inlinks": RuleSpec(
        "internal_links", "notice", 3,
        "Inlinks are mostly navigation/footer links",
        "Most inlinks to this page appear to come from nav/header/footer placements.",
        "Add contextual in-content links from semantically related pages.",
    ),
    "duplicate_title": RuleSpec(
        "seo", "warning", 7,
        "Duplicate titles detected",
        "Multiple pages share identical title text.",
        "Make each page title unique and intent-specific.",
    ),
    "meta_description_duplicate": RuleSpec(
        "serp", "notice", 4,
        "Duplicate meta descriptions",
        "Multiple pages share identical meta description text.",
        "Use unique descriptions per page.",
    ),
    "duplicate_blocks_across_pages": RuleSpec(
        "content_quality", "notice", 3,
        "Repeated content blocks across pages",
        "Similar long text blocks appear on multiple pages.",
        "Differentiate core paragraphs per page intent to avoid template duplication.",
    ),
    "focus_inlinks_count_low": RuleSpec(
        "internal_links", "warning", 7,
        "Focus page has low inlink count",
        "Focus URL has fewer internal inlinks than the recommended baseline.",
        "Add contextual internal links to the focus URL from relevant high-value pages.",
    ),
    "focus_anchor_quality_low": RuleSpec(
        "internal_links", "warning", 6,
        "Focus page anchor quality is low",
        "Generic or empty anchors dominate inlinks to the focus URL.",
        "Improve anchor specificity around topic and user intent.",
    ),
    "canonical_to_non_200": RuleSpec(
        "indexation_conflicts", "warning", 7,
        "Canonical points to non-200 URL",
        "Canonical target URL is not returning HTTP 200.",
        "Update the canonical to a stable, indexable 200 URL.",
    ),
    "sitemap_contains_non_canonical": RuleSpec(
        "indexation_conflicts", "notice", 4,
        "Sitemap contains non-canonical URLs",
        "Some sitemap URLs canonicalize to a different destination.",
        "Align sitemap entries with canonical destinations.",
    ),
    "broken_internal_links": RuleSpec(
        "technical", "error", 8,
        "Broken internal links",
        "Some internal links resolve to errors or unreachable targets.",
        "Fix or remove broken internal links.",
    ),
    "broken_external_links": RuleSpec(
        "technical", "warning", 6,
        "Broken external links",
        "Some outbound links return errors or time out.",
        "Update or remove stale outbound links.",
    ),
    "redirect_chain": RuleSpec(
        "technical", "warning", 6,
        "Redirect chains detected",
        "One or more URLs require multiple redirect hops.",
        "Reduce redirects to a single hop where possible.",
    ),
}


def make_issue(
    rule_id: str,
    affected_urls: Iterable[str],
    evidence: List[Evidence],
    *,
    severity: Optional[str] = None,
    rank: Optional[int] = None,
    description: Optional[str] = None,
    tags: Iterable[str] = ("global",),
) -> Issue:
    rule = RULES[rule_id]
    return Issue(
        id=rule_id,
        category=rule.category,
        severity=severity or rule.severity,
        rank=rule.rank if rank is None else rank,
        title=rule.title,
        description=description or rule.description,
        affected_urls=sorted(set(affected_urls)),
        evidence=evidence,
        recommendation=rule.recommendation,
        tags=sorted(set(tags)),
    )


class _RulePass(NamedTuple):
    context: RuleContext
    anchor_stats: Dict[str, AnchorStats]
    service_patterns: List[str]


PageCheck = Callable[[PageExtract, _RulePass], List[Issue]]


def _evidence(page: PageExtract, message: str, type: str = "content", **extra: Any) -> Evidence:
    return Evidence(type=type, message=message, url=page.url, **extra)


_EVIDENCE_FIELDS = ("details", "target_url", "source_url", "status")


def _single(rule_id: str, page: PageExtract, message: str, type: str = "content", **overrides: Any) -> List[Issue]:
    """One issue for *page* with a single evidence entry; evidence fields are split from issue overrides."""
    extra = {key: overrides.pop(key) for key in _EVIDENCE_FIELDS if key in overrides}
    return [make_issue(rule_id, [page.url], [_evidence(page, message, type, **extra)], **overrides)]


def has_meta_noindex(value: Optional[str]) -> bool:
    return bool(value and _META_NOINDEX_RE.search(value))


def has_header_noindex(value: Optional[str]) -> bool:
    return bool(value and _HEADER_NOINDEX_RE.search(value))


def is_service_page(url: str, patterns: List[str]) -> bool:
    path = urlparse(url).path.lower()
    return any(matches_pattern(path, pattern.lower()) for pattern in patterns)


def _h1_texts(page: PageExtract) -> List[str]:
    return [heading.text for heading in page.headings_outline if heading.level == 1]


# ── per-page checks ───────────────────────────────────────────────────────────


def check_title(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    length = len(page.title_text.strip())
    if not page.title or length == 0:
        return _single("missing_title", page, "No <title> text extracted.")
    if length > TITLE_HARD_MAX:
        return _single(
            "title_length_out_of_range",
            page,
            f"Title length is {length}.",
            severity="error",
            rank=8,
            description=f"Title is longer than {TITLE_HARD_MAX} characters and will be truncated.",
        )
    if length < TITLE_MIN or length > TITLE_MAX:
        return _single("title_length_out_of_range", page, f"Title length is {length}.")
    return []


def check_meta_description(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    if not rule_pass.context.include_serp:
        return []
    length = len(page.meta_description_text.strip())
    if not page.meta_description or length == 0:
        return _single("meta_description_missing", page, "No meta description extracted.")

    issues: List[Issue] = []
    if length > DESCRIPTION_HARD_MAX:
        issues += _single(
            "description_length_out_of_range",
            page,
            f"Description length is {length}.",
            severity="error",
            rank=6,
            description=f"Meta description is longer than {DESCRIPTION_HARD_MAX} characters and will be truncated.",
        )
    elif length < DESCRIPTION_MIN or length > DESCRIPTION_MAX:
        issues += _single("description_length_out_of_range", page, f"Description length is {length}.")

    repeat = count_top_keyword_repeat(page.meta_description_text)
    if repeat.count >= SPAMMY_REPEAT_COUNT or repeat.ratio >= SPAMMY_REPEAT_RATIO:
        issues += _single(
            "meta_description_spammy",
            page,
            f'Top token "{repeat.top_token}" repeats {repeat.count} times ({round(repeat.ratio * 100)}%).',
        )
    return issues


def check_serp_headings(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    if not rule_pass.context.include_serp:
        return []
    issues: List[Issue] = []
    h1_texts = _h1_texts(page)
    h1_text = h1_texts[0] if h1_texts else ""

    if h1_text and page.title_text:
        similarity = jaccard_similarity(page.title_text, h1_text)
        if similarity < TITLE_H1_MIN_SIMILARITY:
            issues += _single(
                "title_h1_mismatch",
                page,
                f"Similarity score: {round(similarity * 100)}%.",
                details={"title": page.title_text, "h1": h1_text},
            )

    first_two = [heading.text for heading in page.headings_outline[:2]]
    heading_similarity = jaccard_similarity(first_two[0], first_two[1]) if len(first_two) == 2 else 0.0
    if len(h1_texts) > 1 or heading_similarity >= HEADING_DUPLICATE_SIMILARITY:
        message = (
            f"Detected {len(h1_texts)} H1 headings."
            if len(h1_texts) > 1
            else f"First heading similarity is {round(heading_similarity * 100)}%."
        )
        issues += _single("title_overwrite_risk", page, message)
    return issues


def check_headings(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    h1_count = len(_h1_texts(page))
    if h1_count == 0:
        issues += _single("missing_h1", page, "No heading level=1 found.")
    elif h1_count > 1:
        issues += _single("multiple_h1", page, f"Detected {h1_count} H1 headings.")

    levels = [heading.level for heading in page.headings_outline]
    skips = [(a, b) for a, b in zip(levels, levels[1:]) if b - a > 1]
    if skips:
        first_from, first_to = skips[0]
        issues += _single(
            "heading_level_skips",
            page,
            f"Outline jumps from H{first_from} to H{first_to} ({len(skips)} skip(s)).",
        )
    return issues


def check_canonical(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    if not page.canonical:
        return _single("missing_canonical", page, "No canonical tag extracted.")
    if page.canonical_url and url_key(page.canonical_url) != url_key(page.final_url):
        return _single(
            "canonical_mismatch",
            page,
            f"Canonical points to {page.canonical_url}.",
            target_url=page.canonical_url,
        )
    return []


def check_indexability(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    meta_noindex = has_meta_noindex(page.meta_robots_content)
    header_noindex = has_header_noindex(page.x_robots_tag)

    if meta_noindex:
        issues += _single("meta_noindex", page, "Detected noindex token in robots meta.")

    if page.meta_robots_content and page.x_robots_tag and meta_noindex != header_noindex:
        issues += _single(
            "robots_meta_xrobots_conflict",
            page,
            f'metaRobots="{page.meta_robots_content}", xRobotsTag="{page.x_robots_tag}"',
            type="http",
        )

    if is_blocked_by_robots(page.url, rule_pass.context.robots_disallow):
        issues += _single("blocked_by_robots", page, "Matched robots disallow rule.", type="http")

    if not meta_noindex and not header_noindex and page.status != 200:
        issues += _single("non_200_indexable", page, f"Status code is {page.status}.", type="http", status=page.status)
    return issues


def _has_keyword(haystack: str, keywords: Iterable[str]) -> bool:
    return any(normalize_for_compare(keyword) in haystack for keyword in keywords)


def check_service_intent(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    if not rule_pass.context.include_serp or not is_service_page(page.final_url, rule_pass.service_patterns):
        return []
    haystack = normalize_for_compare(f"{page.heading_text_concat} {page.main_text}")
    issues: List[Issue] = []
    for section, rule_id in (
        ("for_who", "missing_section_for_who"),
        ("process", "missing_section_process"),
        ("pricing_or_logistics", "missing_section_pricing_or_logistics"),
    ):
        keywords = SECTION_KEYWORDS[section]
        if not _has_keyword(haystack, keywords):
            issues += _single(rule_id, page, f"No keywords matched: {'/'.join(keywords)}.")

    question_headings = any(heading.text.rstrip().endswith("?") for heading in page.headings_outline)
    if not question_headings and not _has_keyword(haystack, SECTION_KEYWORDS["faq"]):
        issues += _single("missing_section_faq", page, "No FAQ markers detected.")
    return issues


def check_thin_content(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    context = rule_pass.context
    threshold = (
        context.service_min_words
        if is_service_page(page.final_url, rule_pass.service_patterns)
        else context.default_min_words
    )
    if page.word_count_main >= threshold:
        return []
    return _single(
        "thin_content",
        page,
        f"word_count_main={page.word_count_main}, threshold={threshold}.",
        details={"word_count_main": page.word_count_main, "threshold": threshold},
    )


def check_images(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    images = page.images
    if images.missing_alt_count > 0:
        issues += _single("images_missing_alt", page, f"{images.missing_alt_count} images missing alt text.")
    if images.missing_alt_count + images.generic_alt_count > 0:
        issues += _single(
            "images_alt_generic",
            page,
            f"missing_alt_count={images.missing_alt_count}, generic_alt_count={images.generic_alt_count}.",
        )
    return issues


def _schema_objects(parsed: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    output: List[Dict[str, Any]] = []

    def walk(value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                walk(item)
            return
        if not isinstance(value, dict):
            return
        output.append(value)
        if value.get("@graph"):
            walk(value["@graph"])

    walk(parsed)
    return output


def _has_schema_type(record: Dict[str, Any], expected: str) -> bool:
    at_type = record.get("@type")
    if isinstance(at_type, str):
        return at_type == expected
    if isinstance(at_type, list):
        return expected in at_type
    return False


def _org_is_complete(record: Dict[str, Any]) -> bool:
    has_name = isinstance(record.get("name"), str) and bool(normalize_text(record["name"]))
    has_url = isinstance(record.get("url"), str) and bool(normalize_text(record["url"]))
    logo = record.get("logo")
    has_logo = isinstance(logo, str) or isinstance(logo, dict)
    return has_name and has_url and has_logo


def _breadcrumb_is_valid(record: Dict[str, Any]) -> bool:
    items = record.get("itemListElement")
    if not isinstance(items, list) or not items:
        return False
    for item in items:
        if not isinstance(item, dict):
            return False
        embedded = item.get("item")
        has_name = isinstance(item.get("name"), str) or (isinstance(embedded, dict) and isinstance(embedded.get("name"), str))
        has_url = isinstance(embedded, str) or (
            isinstance(embedded, dict) and isinstance(embedded.get("url") or embedded.get("@id"), str)
        )
        if not (has_name and has_url):
            return False
    return True


def check_schema(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    if page.jsonld_parse_failures:
        issues.append(
            make_issue(
                "invalid_jsonld",
                [page.url],
                [_evidence(page, message, "schema") for message in page.jsonld_parse_failures],
            )
        )

    types = page.schema_types_detected
    if not any(schema_type in ORG_SCHEMA_TYPES for schema_type in types):
        issues += _single("missing_org_schema", page, "No Organization/LocalBusiness schema type found.", "schema")

    depth = path_depth(page.final_url)
    if depth >= 2 and "BreadcrumbList" not in types:
        issues += _single("missing_breadcrumb_schema", page, f"Path depth is {depth}.", "schema")

    objects = _schema_objects(page.jsonld_parsed)
    incomplete = [
        record
        for record in objects
        if any(_has_schema_type(record, schema_type) for schema_type in ORG_SCHEMA_TYPES) and not _org_is_complete(record)
    ]
    if incomplete:
        issues += _single("org_schema_incomplete", page, f"Incomplete org-like schema blocks: {len(incomplete)}.", "schema")

    invalid_breadcrumbs = [
        record for record in objects if _has_schema_type(record, "BreadcrumbList") and not _breadcrumb_is_valid(record)
    ]
    if invalid_breadcrumbs:
        issues += _single(
            "breadcrumb_schema_invalid", page, f"Invalid BreadcrumbList blocks: {len(invalid_breadcrumbs)}.", "schema"
        )

    blocked = is_blocked_by_robots(page.url, rule_pass.context.robots_disallow)
    if types and (has_meta_noindex(page.meta_robots_content) or has_header_noindex(page.x_robots_tag) or blocked):
        issues += _single("schema_blocked_or_noindex_conflict", page, f"schema_types={', '.join(types)}", "schema")
    return issues


def check_security(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    security = page.security
    if not security.is_https:
        issues += _single("https_missing", page, "Final URL is not HTTPS.", "security")
    if security.mixed_content_candidates:
        issues.append(
            make_issue(
                "mixed_content",
                [page.url],
                [
                    _evidence(page, f"HTTP asset: {candidate}", "security", target_url=candidate)
                    for candidate in security.mixed_content_candidates
                ],
            )
        )
    if security.security_headers_missing:
        issues += _single(
            "missing_security_headers",
            page,
            f"Missing headers: {', '.join(security.security_headers_missing)}",
            "security",
        )
    return issues


def check_accessibility(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    if not (page.html_lang or "").strip():
        issues += _single("missing_html_lang", page, "html[lang] is missing or empty.")
    if page.links_without_accessible_name_count > 0:
        issues += _single(
            "links_without_accessible_name", page, f"Count: {page.links_without_accessible_name_count}."
        )
    return issues


def check_inlinks(page: PageExtract, rule_pass: _RulePass) -> List[Issue]:
    issues: List[Issue] = []
    if not is_root_path(page.final_url):
        if page.inlinks_count == 0:
            issues += _single("orphan_page", page, "inlinks_count is 0.", "link")
        elif page.inlinks_count == 1:
            issues += _single("near_orphan_page", page, "inlinks_count is 1.", "link")

    stats = rule_pass.anchor_stats.get(url_key(page.final_url))
    if stats and stats.total > 0 and stats.nav_likely / stats.total > NAV_ONLY_INLINKS_RATIO:
        issues += _single("excessive_nav_only_inlinks", page, f"nav_likely_inlinks={stats.nav_likely}/{stats.total}.", "link")
    return issues


PAGE_CHECKS: List[PageCheck] = [
    check_serp_headings,
    check_title,
    check_meta_description,
    check_headings,
    check_canonical,
    check_indexability,
    check_service_intent,
    check_thin_content,
    check_images,
    check_schema,
    check_security,
    check_accessibility,
    check_inlinks,
]


def _run_check(name: str, check: Callable[..., List[Issue]], *args: Any) -> List[Issue]:
    try:
        return check(*args)
    except Exception:
        logger.exception("Rule check %s failed; skipping it", name)
        return []


# ── site checks ───────────────────────────────────────────────────────────────


def _duplicate_field_issues(
    pages: List[PageExtract],
    rule_id: str,
    field_name: str,
    value_of: Callable[[PageExtract], Optional[str]],
) -> List[Issue]:
    """One issue per group of distinct pages sharing the same normalised value.

    Pages with the same final URL, or pagination aliases of the same path,
    count as one page.
    """
    groups: Dict[str, Dict[str, str]] = {}
    for page in pages:
        value = normalize_text(value_of(page))
        if not value:
            continue
        alias = dedup_alias_key(page.final_url)
        members = groups.setdefault(value, {})
        if alias not in members or page.url < members[alias]:
            members[alias] = page.url

    issues: List[Issue] = []
    for value in sorted(groups):
        urls = sorted(groups[value].values())
        if len(urls) < 2:
            continue
        issues.append(
            make_issue(
                rule_id,
                urls,
                [
                    Evidence(
                        type="content",
                        message=f"Duplicate {field_name} found on {len(urls)} pages.",
                        details={"duplicate_value": value},
                    )
                ],
            )
        )
    return issues


def check_duplicate_titles(pages: List[PageExtract], rule_pass: _RulePass) -> List[Issue]:
    return _duplicate_field_issues(pages, "duplicate_title", "title", lambda page: page.title)


def check_duplicate_descriptions(pages: List[PageExtract], rule_pass: _RulePass) -> List[Issue]:
    if not rule_pass.context.include_serp:
        return []
    return _duplicate_field_issues(
        pages, "meta_description_duplicate", "description", lambda page: page.meta_description
    )


def check_repeated_blocks(pages: List[PageExtract], rule_pass: _RulePass) -> List[Issue]:
    groups = find_repeated_blocks(pages)
    if not groups:
        return []
    return [
        make_issue(
            "duplicate_blocks_across_pages",
            [url for group in groups for url in group.urls],
            [
                Evidence(
                    type="content",
                    message=f"Shared block across {len(group.urls)} pages.",
                    details={"sample_text": group.chunk[:SAMPLE_TEXT_CHARS], "urls": group.urls},
                )
                for group in groups
            ],
        )
    ]


def _find_focus_page(pages: List[PageExtract], focus_url: str) -> Optional[PageExtract]:
    focus_key = url_key(focus_url)
    for page in pages:
        if url_key(page.final_url) == focus_key:
            return page
    for page in pages:
        if url_key(page.url) == focus_key:
            return page
    return None


def check_focus(pages: List[PageExtract], rule_pass: _RulePass) -> List[Issue]:
    context = rule_pass.context
    if not context.focus_url:
        return []
    focus_page = _find_focus_page(pages, context.focus_url)
    if focus_page is None:
        return []

    issues: List[Issue] = []
    if focus_page.inlinks_count < context.focus_inlinks_threshold:
        issues += _single(
            "focus_inlinks_count_low",
            focus_page,
            f"inlinks_count={focus_page.inlinks_count}, threshold={context.focus_inlinks_threshold}.",
            "link",
            tags=("focus",),
        )

    stats = rule_pass.anchor_stats.get(url_key(focus_page.final_url))
    if stats and stats.total > 0:
        weak_share = (stats.generic + stats.empty) / stats.total
        if weak_share > context.focus_anchor_quality_threshold:
            issues += _single(
                "focus_anchor_quality_low",
                focus_page,
                f"generic+empty={stats.generic + stats.empty}/{stats.total}.",
                "link",
                tags=("focus",),
            )
    return issues


def check_sitemap_canonicals(pages: List[PageExtract], rule_pass: _RulePass) -> List[Issue]:
    sitemap_keys = {url_key(url) for url in rule_pass.context.sitemap_urls}
    if not sitemap_keys:
        return []
    conflicts = [
        page
        for page in pages
        if url_key(page.final_url) in sitemap_keys
        and page.canonical_url
        and url_key(page.canonical_url) != url_key(page.final_url)
    ]
    if not conflicts:
        return []
    conflicts.sort(key=lambda page: page.url)
    return [
        make_issue(
            "sitemap_contains_non_canonical",
            [page.url for page in conflicts],
            [
                Evidence(
                    type="http",
                    message=f"Sitemap URL canonicalizes to {page.canonical_url}.",
                    url=page.url,
                    target_url=page.canonical_url,
                )
                for page in conflicts[:MAX_SITEMAP_EVIDENCE]
            ],
        )
    ]


SITE_CHECKS = [
    check_duplicate_titles,
    check_duplicate_descriptions,
    check_repeated_blocks,
    check_focus,
    check_sitemap_canonicals,
]


# ── network checks ────────────────────────────────────────────────────────────


async def _network_issues(
    context: RuleContext,
    auditable: List[PageExtract],
    client: httpx.AsyncClient,
) -> List[Issue]:
    issues: List[Issue] = []
    resolver = StatusResolver(client, context.timeout_ms, block_private=context.block_private_addresses)

    try:
        failures = await collect_canonical_failures(context.pages, resolver)
        for failure in failures:
            affected = [page.url for page in auditable if page.canonical_url == failure.canonical_url]
            issues.append(
                make_issue(
                    "canonical_to_non_200",
                    affected,
                    [
                        Evidence(
                            type="http",
                            message=f"Canonical {failure.canonical_url} status={failure.status or 'unreachable'}.",
                            target_url=failure.canonical_url,
                            status=failure.status,
                            details={"error": failure.error} if failure.error else None,
                        )
                    ],
                )
            )
    except Exception:
        logger.exception("Canonical health check failed; skipping it")

    for internal, rule_id in ((True, "broken_internal_links"), (False, "broken_external_links")):
        try:
            broken = await collect_broken_links(
                context.pages, resolver, internal=internal, robots_disallow=context.robots_disallow
            )
        except Exception:
            logger.exception("Broken link check %s failed; skipping it", rule_id)
            continue
        if broken:
            issues.append(
                make_issue(
                    rule_id,
                    [item.source_url for item in broken],
                    [
                        Evidence(
                            type="link",
                            message=item.error or f"Status {item.status}",
                            source_url=item.source_url,
                            target_url=item.target_url,
                            status=item.status,
                        )
                        for item in broken
                    ],
                )
            )

    try:
        chains = await collect_redirect_chains(
            context.pages,
            client,
            timeout_ms=context.timeout_ms,
            block_private=context.block_private_addresses,
        )
        if chains:
            issues.append(
                make_issue(
                    "redirect_chain",
                    [chain.url for chain in chains],
                    [
                        Evidence(
                            type="http",
                            message=(
                                f"Redirect loop after {chain.length} hops."
                                if chain.loop
                                else f"Redirect chain length is {chain.length}."
                            ),
                            url=chain.url,
                            details={"hops": chain.hops},
                        )
                        for chain in chains
                    ],
                )
            )
    except Exception:
        logger.exception("Redirect chain check failed; skipping it")

    return issues


async def run_rules(context: RuleContext, *, client: Optional[httpx.AsyncClient] = None) -> List[Issue]:
    """Evaluate every rule over *context* and return raw, unconsolidated issues.

    Non-2xx pages only yield ``page_not_available``; all other per-page
    checks need a successfully fetched document.  When no *client* is
    given a short-lived one is created for the network checks.
    """
    rule_pass = _RulePass(
        context=context,
        anchor_stats=anchor_stats_by_target(context.pages, context.generic_anchors),
        service_patterns=list(context.service_path_patterns or DEFAULT_SERVICE_PATH_PATTERNS),
    )

    issues: List[Issue] = []
    auditable: List[PageExtract] = []
    for page in context.pages:
        if not page.is_auditable:
            message = f"Status code is {page.status}." if page.status is not None else f"Fetch failed: {page.fetch_error}"
            issues += _single("page_not_available", page, message, "http", status=page.status)
            continue
        auditable.append(page)
        for check in PAGE_CHECKS:
            issues += _run_check(check.__name__, check, page, rule_pass)

    for site_check in SITE_CHECKS:
        issues += _run_check(site_check.__name__, site_check, auditable, rule_pass)

    if client is None:
        async with build_client(context.timeout_ms) as own_client:
            issues += await _network_issues(context, auditable, own_client)
    else:
        issues += await _network_issues(context, auditable, client)

    logger.info("Rule engine: %d raw issues over %d pages", len(issues), len(context.pages))
    return issues
