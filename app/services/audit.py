"""Audit pipeline: seeds → crawl → link graph → rules → report."""

import logging
import math
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

import httpx

from app.models.audit_request import AuditInputs
from app.models.issue import Issue
from app.models.page import PageExtract, PageSummary
from app.models.report import Action, FocusSummary, InternalLinkGraph, ProgressEvent, Report, Summary
from app.models.rule_context import RuleContext
from app.services.consolidator import consolidate_issues
from app.services.crawler import CRAWL_PERCENT_END, CRAWL_PERCENT_START, crawl_site
from app.services.fetcher import build_client
from app.services.link_graph import build_deterministic_internal_link_plan, build_internal_link_graph
from app.services.normalizer import url_key
from app.services.rules import run_rules
from app.services.sitemap import discover_seeds

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

SCORE_BUCKETS = ("seo", "technical", "content", "security")

# Issue category → score bucket; unknown categories count as technical
CATEGORY_BUCKETS: Dict[str, str] = {
    "seo": "seo",
    "serp": "seo",
    "indexability": "seo",
    "indexation_conflicts": "seo",
    "internal_links": "seo",
    "technical": "technical",
    "schema": "technical",
    "schema_quality": "technical",
    "content": "content",
    "content_quality": "content",
    "intent": "content",
    "a11y": "content",
    "security": "security",
}

SEVERITY_PENALTY = {"error": 10, "warning": 5, "notice": 2}

IMPACT_BY_SEVERITY = {"error": "high", "warning": "medium", "notice": "low"}

EFFORT_BY_CATEGORY = {
    "content": "medium",
    "content_quality": "high",
    "intent": "medium",
    "internal_links": "low",
    "seo": "low",
    "serp": "low",
    "indexability": "low",
    "a11y": "low",
}

MAX_FOCUS_ISSUES = 5
LINK_PLAN_MAX_ITEMS = 5


def build_run_id(now: datetime) -> str:
    return "run-" + now.isoformat(timespec="milliseconds").replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def _emit(on_progress: Optional[ProgressCallback], stage: str, detail: str, percent: int) -> None:
    logger.info("Audit progress [%s %d%%] %s", stage, percent, detail)
    if on_progress:
        on_progress(ProgressEvent(stage=stage, detail=detail, percent=percent))


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_scores(issues: List[Issue]) -> Dict[str, int]:
    """Per-bucket score: 100 minus severity penalties, floored at zero."""
    penalties = {bucket: 0 for bucket in SCORE_BUCKETS}
    for issue in issues:
        bucket = CATEGORY_BUCKETS.get(issue.category, "technical")
        penalties[bucket] += SEVERITY_PENALTY[issue.severity]
    return {bucket: max(0, 100 - penalty) for bucket, penalty in penalties.items()}


def _focus_keys(pages: List[PageExtract], focus_url: str) -> Set[str]:
    focus_key = url_key(focus_url)
    keys = {focus_key}
    for page in pages:
        if url_key(page.final_url) == focus_key:
            keys.add(url_key(page.url))
    return keys


def _action_for(issue: Issue) -> Action:
    return Action(
        title=issue.recommendation or issue.title,
        impact=IMPACT_BY_SEVERITY[issue.severity],
        effort=EFFORT_BY_CATEGORY.get(issue.category, "medium"),
        rationale=f"{issue.title}: {issue.description}",
    )


def build_focus_summary(
    focus_url: str,
    issues: List[Issue],
    graph: InternalLinkGraph,
) -> FocusSummary:
    keys = _focus_keys(graph.pages, focus_url)
    focus_issues = [issue for issue in issues if any(url_key(url) in keys for url in issue.affected_urls)]
    penalty = sum(SEVERITY_PENALTY[issue.severity] for issue in focus_issues)
    top = focus_issues[:MAX_FOCUS_ISSUES]
    return FocusSummary(
        primary_url=focus_url,
        focus_score=max(0, 100 - penalty),
        focus_top_issues=[issue.id for issue in top],
        recommended_next_actions=[_action_for(issue) for issue in top],
        focus_inlinks_count=graph.focus_inlinks_count,
        top_inlink_sources_to_focus=graph.top_inlink_sources_to_focus,
        focus_anchor_quality=graph.focus_anchor_quality,
    )


def build_summary(issues: List[Issue], graph: InternalLinkGraph, inputs: AuditInputs) -> Summary:
    scores = compute_scores(issues)
    focus_url = inputs.focus.primary_url
    return Summary(
        score_total=_round(sum(scores.values()) / len(scores)),
        score_by_category=scores,
        pages_crawled=len(graph.pages),
        errors=sum(1 for issue in issues if issue.severity == "error"),
        warnings=sum(1 for issue in issues if issue.severity == "warning"),
        notices=sum(1 for issue in issues if issue.severity == "notice"),
        focus=build_focus_summary(focus_url, issues, graph) if focus_url else None,
        internal_links=graph.internal_links_summary,
    )


async def _run(inputs: AuditInputs, client: httpx.AsyncClient, on_progress: Optional[ProgressCallback]) -> Report:
    started_at = datetime.now(timezone.utc)
    run_id = build_run_id(started_at)

    _emit(on_progress, "seeds", f"Discovering seeds for {inputs.target}", 0)
    discovery = await discover_seeds(inputs, client)
    _emit(on_progress, "seeds", f"{len(discovery.seeds)} seeds", CRAWL_PERCENT_START)

    pages = await crawl_site(
        inputs,
        discovery.seeds,
        client=client,
        robots_disallow=discovery.robots_disallow,
        on_progress=on_progress,
    )

    _emit(on_progress, "graph", f"Building link graph for {len(pages)} pages", CRAWL_PERCENT_END + 2)
    focus_url = inputs.focus.primary_url
    graph = build_internal_link_graph(pages, focus_url, inputs.generic_anchors)
    link_plan = build_deterministic_internal_link_plan(
        graph.pages, focus_url, inputs.focus.primary_keyword, max_items=LINK_PLAN_MAX_ITEMS
    )

    _emit(on_progress, "rules", "Running rule engine", 70)
    context = RuleContext.from_inputs(inputs, graph.pages, discovery.robots_disallow, discovery.sitemap_entries)
    raw_issues = await run_rules(context, client=client)
    issues = consolidate_issues(raw_issues)
    _emit(on_progress, "rules", f"{len(issues)} issues after consolidation", 90)

    summary = build_summary(issues, graph, inputs)
    report = Report(
        run_id=run_id,
        started_at=started_at.isoformat(),
        finished_at=datetime.now(timezone.utc).isoformat(),
        inputs=inputs,
        summary=summary,
        issues=issues,
        pages=[
            PageSummary(
                url=page.url,
                final_url=page.final_url,
                status=page.status,
                title=page.title,
                canonical=page.canonical,
            )
            for page in graph.pages
        ],
        page_extracts=graph.pages,
        internal_link_plan=link_plan,
        seed_discovery=discovery,
    )
    _emit(on_progress, "report", f"Score {summary.score_total}", 100)
    return report


async def run_audit(
    inputs: AuditInputs,
    client: Optional[httpx.AsyncClient] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Report:
    """Run one complete audit and return its :class:`Report`.

    Raises:
        ValueError: on invalid inputs (bad target, unknown modes).
        CrawlSeedError: when the start URL cannot be fetched at all.
    """
    if client is not None:
        return await _run(inputs, client, on_progress)
    async with build_client(inputs.timeout_ms, inputs.user_agent) as own_client:
        return await _run(inputs, own_client, on_progress)
