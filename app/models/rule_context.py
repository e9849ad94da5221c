from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.audit_request import AuditInputs
from app.models.page import PageExtract


class RuleContext(BaseModel):
    """Input bundle for one rule-engine pass.

    Pages must already carry inlink data from the link graph builder.
    """

    model_config = ConfigDict(frozen=True)

    pages: List[PageExtract]
    robots_disallow: List[str] = Field(default_factory=list)
    timeout_ms: int = Field(ge=1)
    focus_url: Optional[str] = None
    sitemap_urls: List[str] = Field(default_factory=list)
    focus_inlinks_threshold: int = Field(default=3, ge=0)
    focus_anchor_quality_threshold: float = Field(default=0.4, ge=0, le=1)
    service_min_words: int = Field(default=300, ge=0)
    default_min_words: int = Field(default=500, ge=0)
    generic_anchors: Optional[List[str]] = None
    service_path_patterns: Optional[List[str]] = None
    include_serp: bool = True
    block_private_addresses: bool = True

    @classmethod
    def from_inputs(
        cls,
        inputs: AuditInputs,
        pages: List[PageExtract],
        robots_disallow: List[str],
        sitemap_urls: List[str],
    ) -> "RuleContext":
        return cls(
            pages=pages,
            robots_disallow=robots_disallow,
            timeout_ms=inputs.timeout_ms,
            focus_url=inputs.focus.primary_url,
            sitemap_urls=sitemap_urls,
            focus_inlinks_threshold=inputs.focus_inlinks_threshold,
            focus_anchor_quality_threshold=inputs.focus_anchor_quality_threshold,
            service_min_words=inputs.service_min_words,
            default_min_words=inputs.default_min_words,
            generic_anchors=inputs.generic_anchors,
            service_path_patterns=inputs.service_path_patterns,
            include_serp=inputs.include_serp,
            block_private_addresses=inputs.block_private_addresses,
        )
