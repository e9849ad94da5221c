from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HeadingItem(BaseModel):
    level: int
    text: str
    order: int = 0


class PageLinks(BaseModel):
    internal_count: int = 0
    external_count: int = 0
    internal_targets: List[str] = Field(default_factory=list)
    external_targets: List[str] = Field(default_factory=list)


class PageImages(BaseModel):
    count: int = 0
    missing_alt_count: int = 0
    generic_alt_count: int = 0
    large_image_candidates: List[str] = Field(default_factory=list)


class PageSecurity(BaseModel):
    is_https: bool = False
    mixed_content_candidates: List[str] = Field(default_factory=list)
    security_headers_present: List[str] = Field(default_factory=list)
    security_headers_missing: List[str] = Field(default_factory=list)


class SchemaError(BaseModel):
    message: str
    pointer: str


class InternalOutlink(BaseModel):
    """One distinct (target, anchor, rel, nav placement) link observed on a page."""

    target_url: str
    anchor_text: str = ""
    rel: str = ""
    is_nav_likely: bool = False
    occurrences: int = Field(default=1, ge=1)


class ExternalOutlink(BaseModel):
    target_url: str
    anchor_text: str = ""
    rel: str = ""
    occurrences: int = Field(default=1, ge=1)


class AnchorCount(BaseModel):
    anchor: str
    count: int


class PageExtract(BaseModel):
    """Everything the audit knows about one crawled URL.

    Created once by the extractor; ``inlinks_count`` and
    ``inlinks_anchors_top`` are filled in by the link graph builder.
    """

    url: str
    final_url: str
    status: Optional[int] = None
    fetch_error: Optional[str] = None
    content_type: Optional[str] = None

    title: Optional[str] = None
    title_text: str = ""
    title_length: int = 0
    meta_description: Optional[str] = None
    meta_description_text: str = ""
    meta_description_length: int = 0
    meta_robots: Optional[str] = None
    meta_robots_content: str = ""
    x_robots_tag: Optional[str] = None
    canonical: Optional[str] = None  # raw href as written in the document
    canonical_url: Optional[str] = None  # resolved against final_url
    hreflang_links: List[str] = Field(default_factory=list)
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    html_lang: Optional[str] = None

    headings_outline: List[HeadingItem] = Field(default_factory=list)
    heading_text_concat: str = ""

    links: PageLinks = Field(default_factory=PageLinks)
    images: PageImages = Field(default_factory=PageImages)
    security: PageSecurity = Field(default_factory=PageSecurity)

    jsonld_raw_blocks: List[str] = Field(default_factory=list)
    jsonld_parsed: List[Dict[str, Any]] = Field(default_factory=list)
    schema_types_detected: List[str] = Field(default_factory=list)
    jsonld_parse_failures: List[str] = Field(default_factory=list)
    schema_errors: List[SchemaError] = Field(default_factory=list)

    main_text: str = ""
    word_count_main: int = 0
    first_viewport_text: str = ""
    brand_signals: List[str] = Field(default_factory=list)
    links_without_accessible_name_count: int = 0

    outlinks_internal: List[InternalOutlink] = Field(default_factory=list)
    outlinks_external: List[ExternalOutlink] = Field(default_factory=list)

    inlinks_count: int = 0
    inlinks_anchors_top: List[AnchorCount] = Field(default_factory=list)

    @property
    def is_auditable(self) -> bool:
        """True when the page answered with a 2xx status."""
        return self.status is not None and 200 <= self.status < 300


class PageSummary(BaseModel):
    url: str
    final_url: str
    status: Optional[int]
    title: Optional[str]
    canonical: Optional[str]
