from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.audit_request import AuditInputs
from app.models.issue import Issue, IssueSeverity
from app.models.page import AnchorCount, PageExtract, PageSummary

SeedSource = Literal["start_url", "robots_sitemap", "default_sitemap", "config_sitemap"]


class ProgressEvent(BaseModel):
    stage: str
    detail: str = ""
    percent: int = Field(ge=0, le=100)


class DiscoveredSeed(BaseModel):
    url: str
    source: SeedSource


class SeedDiscoveryResult(BaseModel):
    seeds: List[str]
    discovered: List[DiscoveredSeed] = Field(default_factory=list)
    robots_disallow: List[str] = Field(default_factory=list)
    sitemap_urls_checked: List[str] = Field(default_factory=list)
    sitemap_entries: List[str] = Field(default_factory=list)


class FocusAnchorQuality(BaseModel):
    percent_generic_anchors: int = 0
    percent_empty_anchors: int = 0
    top_anchors: List[AnchorCount] = Field(default_factory=list)


class InternalLinksSummary(BaseModel):
    orphan_pages_count: int = 0
    near_orphan_pages_count: int = 0
    nav_likely_inlinks_percent: int = 0
    percent_generic_anchors: int = 0
    percent_empty_anchors: int = 0
    top_anchors: List[AnchorCount] = Field(default_factory=list)


class InternalLinkGraph(BaseModel):
    """Read-only view over crawled pages; rebuilt from scratch on every run."""

    pages: List[PageExtract]
    focus_inlinks_count: int = 0
    top_inlink_sources_to_focus: List[str] = Field(default_factory=list)
    focus_anchor_quality: Optional[FocusAnchorQuality] = None
    internal_links_summary: InternalLinksSummary = Field(default_factory=InternalLinksSummary)


class LinkPlanItem(BaseModel):
    source_url: str
    suggested_anchor: str
    suggested_sentence_context: str
    score: float = 0.0


class Action(BaseModel):
    title: str
    impact: Literal["high", "medium", "low"]
    effort: Literal["high", "medium", "low"]
    rationale: str


class FocusSummary(BaseModel):
    primary_url: str
    focus_score: int
    focus_top_issues: List[str] = Field(default_factory=list)
    recommended_next_actions: List[Action] = Field(default_factory=list)
    focus_inlinks_count: int = 0
    top_inlink_sources_to_focus: List[str] = Field(default_factory=list)
    focus_anchor_quality: Optional[FocusAnchorQuality] = None


class Summary(BaseModel):
    score_total: int
    score_by_category: Dict[str, int]
    pages_crawled: int
    errors: int
    warnings: int
    notices: int
    focus: Optional[FocusSummary] = None
    internal_links: Optional[InternalLinksSummary] = None


class Report(BaseModel):
    run_id: str
    started_at: str
    finished_at: str
    inputs: AuditInputs
    summary: Summary
    issues: List[Issue]
    pages: List[PageSummary]
    page_extracts: List[PageExtract] = Field(default_factory=list)
    internal_link_plan: List[LinkPlanItem] = Field(default_factory=list)
    seed_discovery: Optional[SeedDiscoveryResult] = None


class IssueDelta(BaseModel):
    id: str
    baseline_count: int
    current_count: int
    baseline_max_severity: IssueSeverity
    current_max_severity: IssueSeverity


class DiffReport(BaseModel):
    baseline_run_id: str
    current_run_id: str
    score_total_delta: int
    score_by_category_delta: Dict[str, int]
    pages_crawled_delta: int
    resolved_issues: List[str]
    new_issues: List[str]
    regressed_issues: List[IssueDelta]
