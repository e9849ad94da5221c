from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

CoverageMode = Literal["quick", "surface", "full"]
RenderingMode = Literal["static_html", "headless"]


class Locale(BaseModel):
    language: str = "en"
    country: str = "US"


class AuditFocus(BaseModel):
    primary_url: Optional[str] = None
    primary_keyword: Optional[str] = None
    goal: Optional[str] = None
    secondary_urls: List[str] = Field(default_factory=list)


class AuditInputs(BaseModel):
    """Fully resolved inputs for one audit run.  Frozen once built."""

    model_config = ConfigDict(frozen=True)

    target: str
    coverage: CoverageMode = "surface"
    max_pages: int = Field(default=100, ge=1)
    crawl_depth: int = Field(default=3, ge=0)
    include_patterns: List[str] = Field(default_factory=list)
    exclude_patterns: List[str] = Field(default_factory=list)
    allowed_domains: List[str] = Field(default_factory=list)
    sitemap_urls: List[str] = Field(default_factory=list)
    respect_robots: bool = True
    rendering_mode: RenderingMode = "static_html"
    user_agent: str = "auditly/0.1"
    timeout_ms: int = Field(default=10_000, ge=1)
    locale: Locale = Field(default_factory=Locale)
    focus: AuditFocus = Field(default_factory=AuditFocus)
    focus_inlinks_threshold: int = Field(default=3, ge=0)
    focus_anchor_quality_threshold: float = Field(default=0.4, ge=0, le=1)
    service_min_words: int = Field(default=300, ge=0)
    default_min_words: int = Field(default=500, ge=0)
    generic_anchors: Optional[List[str]] = None
    service_path_patterns: Optional[List[str]] = None
    include_serp: bool = True
    db_write: bool = False
    llm_enabled: bool = False
    block_private_addresses: bool = True
    baseline_run_id: Optional[str] = None


class AuditRequest(BaseModel):
    url: HttpUrl
    coverage: Optional[CoverageMode] = None
    max_pages: Optional[int] = Field(
        default=None,
        ge=1,
        le=500,
        description="Maximum number of pages to crawl (1–500).",
    )
    depth: Optional[int] = Field(
        default=None,
        ge=0,
        le=10,
        description="Maximum link depth from the seed URL (0–10).",
    )
    respect_robots: Optional[bool] = None
    rendering_mode: Optional[RenderingMode] = None
    include_serp: Optional[bool] = None
    focus_url: Optional[str] = None
    focus_keyword: Optional[str] = None
    focus_goal: Optional[str] = None
    focus_inlinks_threshold: Optional[int] = Field(default=None, ge=0)
    service_min_words: Optional[int] = Field(default=None, ge=0)
    generic_anchors: Optional[List[str]] = None
    baseline_run_id: Optional[str] = None


class DiffRequest(BaseModel):
    baseline_run_id: str = Field(min_length=1)
    current_run_id: str = Field(min_length=1)
