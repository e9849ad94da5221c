"""Internal link graph: inlink counts, anchor quality and the link insertion plan."""

import logging
import math
import re
from collections import Counter
from typing import Dict, Iterable, List, NamedTuple, Optional, Set

from app.models.page import AnchorCount, PageExtract
from app.models.report import (
    FocusAnchorQuality,
    InternalLinkGraph,
    InternalLinksSummary,
    LinkPlanItem,
)
from app.services.normalizer import is_root_path, url_key
from app.services.text import normalize_for_compare, normalize_text, tokenize

logger = logging.getLogger(__name__)

DEFAULT_GENERIC_ANCHORS = (
    "kliknij",
    "kliknij tutaj",
    "więcej",
    "zobacz",
    "zobacz więcej",
    "czytaj",
    "czytaj więcej",
    "tutaj",
    "sprawdź",
    "dowiedz się",
    "dowiedz się więcej",
    "link",
    "przejdź",
    "click here",
    "read more",
    "learn more",
    "see more",
    "here",
    "more",
)

TOP_ANCHORS_LIMIT = 10
TOP_SOURCES_LIMIT = 10
CONTEXT_MAX_CHARS = 240

_SENTENCE_SPLIT_RE = re.compile(r"\n{2,}|(?<=[.?!])\s+")


class InlinkRelationship(NamedTuple):
    """One distinct (source, target, anchor) link; ``occurrences`` never matter here."""

    source_url: str
    target_url: str
    anchor: str
    is_nav_likely: bool


class AnchorStats(NamedTuple):
    total: int = 0
    generic: int = 0
    empty: int = 0
    nav_likely: int = 0


def _anchor_key(text: Optional[str]) -> str:
    return (normalize_text(text) or "").lower()


def _percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(math.floor(100 * part / total + 0.5))


def generic_anchor_set(generic_anchors: Optional[Iterable[str]] = None) -> Set[str]:
    source = DEFAULT_GENERIC_ANCHORS if generic_anchors is None else generic_anchors
    return {normalize_for_compare(anchor) for anchor in source if normalize_for_compare(anchor)}


def _is_generic(anchor: str, generic: Set[str]) -> bool:
    return bool(anchor) and normalize_for_compare(anchor) in generic


def collect_inlink_relationships(pages: List[PageExtract]) -> List[InlinkRelationship]:
    """Collapse every page's outlinks into distinct (source, target, anchor) relationships.

    A relationship is nav-likely when any outlink record behind it is.
    Self-links are ignored.  Output is sorted by target, source, anchor.
    """
    relationships: Dict[tuple, bool] = {}
    for page in pages:
        source = url_key(page.final_url)
        for outlink in page.outlinks_internal:
            target = url_key(outlink.target_url)
            if target == source:
                continue
            key = (source, target, _anchor_key(outlink.anchor_text))
            relationships[key] = relationships.get(key, False) or outlink.is_nav_likely

    return [
        InlinkRelationship(source_url=source, target_url=target, anchor=anchor, is_nav_likely=nav)
        for (source, target, anchor), nav in sorted(relationships.items(), key=lambda item: (item[0][1], item[0][0], item[0][2]))
    ]


def _stats(relationships: Iterable[InlinkRelationship], generic: Set[str]) -> AnchorStats:
    total = generic_count = empty = nav = 0
    for relationship in relationships:
        total += 1
        if not relationship.anchor:
            empty += 1
        elif _is_generic(relationship.anchor, generic):
            generic_count += 1
        if relationship.is_nav_likely:
            nav += 1
    return AnchorStats(total=total, generic=generic_count, empty=empty, nav_likely=nav)


def anchor_stats_by_target(
    pages: List[PageExtract], generic_anchors: Optional[Iterable[str]] = None
) -> Dict[str, AnchorStats]:
    """Per-target anchor statistics over distinct inlink relationships."""
    generic = generic_anchor_set(generic_anchors)
    by_target: Dict[str, List[InlinkRelationship]] = {}
    for relationship in collect_inlink_relationships(pages):
        by_target.setdefault(relationship.target_url, []).append(relationship)
    return {target: _stats(items, generic) for target, items in by_target.items()}


def _top_anchors(anchors: Iterable[str], limit: int = TOP_ANCHORS_LIMIT) -> List[AnchorCount]:
    counts = Counter(anchors)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [AnchorCount(anchor=anchor, count=count) for anchor, count in ordered[:limit]]


def _anchor_quality(relationships: List[InlinkRelationship], generic: Set[str]) -> FocusAnchorQuality:
    stats = _stats(relationships, generic)
    return FocusAnchorQuality(
        percent_generic_anchors=_percent(stats.generic, stats.total),
        percent_empty_anchors=_percent(stats.empty, stats.total),
        top_anchors=_top_anchors(relationship.anchor for relationship in relationships),
    )


def build_internal_link_graph(
    pages: List[PageExtract],
    focus_url: Optional[str] = None,
    generic_anchors: Optional[Iterable[str]] = None,
) -> InternalLinkGraph:
    """Compute inlink data for every page plus site and focus summaries.

    The inlink count of a page is the number of distinct source pages
    linking to it.  All percentages are taken over distinct relationships,
    so raw link ``occurrences`` never change them.  Returned pages are
    copies; the input list is left untouched.
    """
    generic = generic_anchor_set(generic_anchors)
    relationships = collect_inlink_relationships(pages)

    sources_by_target: Dict[str, Set[str]] = {}
    anchors_by_target: Dict[str, List[str]] = {}
    for relationship in relationships:
        sources_by_target.setdefault(relationship.target_url, set()).add(relationship.source_url)
        anchors_by_target.setdefault(relationship.target_url, []).append(relationship.anchor)

    graph_pages = [
        page.model_copy(
            update={
                "inlinks_count": len(sources_by_target.get(url_key(page.final_url), ())),
                "inlinks_anchors_top": _top_anchors(anchors_by_target.get(url_key(page.final_url), [])),
            }
        )
        for page in pages
    ]

    orphan_count = 0
    near_orphan_count = 0
    classified: Set[str] = set()
    for page in graph_pages:
        key = url_key(page.final_url)
        if not page.is_auditable or key in classified or is_root_path(page.final_url):
            continue
        classified.add(key)
        if page.inlinks_count == 0:
            orphan_count += 1
        elif page.inlinks_count == 1:
            near_orphan_count += 1

    site_stats = _stats(relationships, generic)
    summary = InternalLinksSummary(
        orphan_pages_count=orphan_count,
        near_orphan_pages_count=near_orphan_count,
        nav_likely_inlinks_percent=_percent(site_stats.nav_likely, site_stats.total),
        percent_generic_anchors=_percent(site_stats.generic, site_stats.total),
        percent_empty_anchors=_percent(site_stats.empty, site_stats.total),
        top_anchors=_top_anchors(relationship.anchor for relationship in relationships),
    )

    focus_inlinks_count = 0
    top_sources: List[str] = []
    focus_quality = None
    if focus_url:
        focus_key = url_key(focus_url)
        to_focus = [relationship for relationship in relationships if relationship.target_url == focus_key]
        contributions = Counter(relationship.source_url for relationship in to_focus)
        focus_inlinks_count = len(contributions)
        top_sources = [
            source
            for source, _count in sorted(contributions.items(), key=lambda item: (-item[1], item[0]))[:TOP_SOURCES_LIMIT]
        ]
        focus_quality = _anchor_quality(to_focus, generic)

    logger.debug(
        "Link graph: %d pages, %d relationships, %d orphans",
        len(graph_pages),
        len(relationships),
        orphan_count,
    )
    return InternalLinkGraph(
        pages=graph_pages,
        focus_inlinks_count=focus_inlinks_count,
        top_inlink_sources_to_focus=top_sources,
        focus_anchor_quality=focus_quality,
        internal_links_summary=summary,
    )


def _sentence_context(page: PageExtract, phrase: str, keyword_tokens: Set[str]) -> str:
    """Pick the sentence that best supports a link to the focus keyword."""
    sentences = [normalize_text(chunk) for chunk in _SENTENCE_SPLIT_RE.split(page.main_text or "")]
    sentences = [sentence for sentence in sentences if sentence]

    for sentence in sentences:
        if phrase and phrase in normalize_for_compare(sentence):
            return sentence[:CONTEXT_MAX_CHARS]

    best = ""
    best_overlap = 0
    for sentence in sentences:
        overlap = len(keyword_tokens & tokenize(sentence))
        if overlap > best_overlap:
            best, best_overlap = sentence, overlap
    if best:
        return best[:CONTEXT_MAX_CHARS]
    return (page.first_viewport_text or page.title_text)[:CONTEXT_MAX_CHARS]


def _suggested_anchor(keyword: str, phrase_present: bool, matched: Set[str]) -> str:
    if phrase_present:
        return keyword
    words = [word for word in keyword.split(" ") if normalize_for_compare(word) in matched]
    return " ".join(words) or keyword


def build_deterministic_internal_link_plan(
    pages: List[PageExtract],
    focus_url: Optional[str],
    focus_keyword: Optional[str],
    max_items: int = 5,
) -> List[LinkPlanItem]:
    """Suggest up to *max_items* pages that should link to the focus URL.

    The focus page and every page already linking to it are excluded.
    Candidates are scored by keyword token overlap with their title and
    main text, with a bonus when the exact keyword phrase appears.  Ties
    are broken by source URL so the plan is stable across runs.
    """
    keyword = normalize_text(focus_keyword)
    if not focus_url or not keyword or max_items <= 0:
        return []

    focus_key = url_key(focus_url)
    keyword_tokens = tokenize(keyword)
    phrase = normalize_for_compare(keyword)
    if not keyword_tokens:
        return []

    already_linking = {
        url_key(page.final_url)
        for page in pages
        if any(url_key(outlink.target_url) == focus_key for outlink in page.outlinks_internal)
    }

    candidates: List[LinkPlanItem] = []
    seen: Set[str] = set()
    for page in pages:
        source = url_key(page.final_url)
        if not page.is_auditable or source in seen:
            continue
        seen.add(source)
        if source == focus_key or url_key(page.url) == focus_key or source in already_linking:
            continue

        content = f"{page.title_text} {page.main_text}"
        matched = keyword_tokens & tokenize(content)
        if not matched:
            continue
        phrase_present = bool(phrase) and phrase in normalize_for_compare(content)
        score = len(matched) / len(keyword_tokens) + (0.5 if phrase_present else 0.0)

        candidates.append(
            LinkPlanItem(
                source_url=source,
                suggested_anchor=_suggested_anchor(keyword, phrase_present, matched),
                suggested_sentence_context=_sentence_context(page, phrase, keyword_tokens),
                score=round(score, 4),
            )
        )

    candidates.sort(key=lambda item: (-item.score, item.source_url))
    return candidates[:max_items]
