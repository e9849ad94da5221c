"""Audit configuration: on-disk defaults and per-run input resolution."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urljoin

from pydantic import BaseModel, Field, ValidationError

from app.models.audit_request import AuditFocus, AuditInputs, CoverageMode, Locale, RenderingMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "seo-audit.config.json"
CONFIG_ENV_VAR = "SEO_AUDIT_CONFIG"


class AuditDefaults(BaseModel):
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


class AuditConfig(BaseModel):
    config_version: int = 1
    defaults: AuditDefaults = Field(default_factory=AuditDefaults)


def _config_path(base_dir: Union[str, Path, None]) -> Path:
    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return Path(base_dir or os.getcwd()) / CONFIG_FILENAME


def load_config(base_dir: Union[str, Path, None] = None) -> AuditConfig:
    """Load ``seo-audit.config.json``, falling back to built-in defaults.

    A broken config file never stops an audit: it is logged and ignored.
    """
    path = _config_path(base_dir)
    if not path.is_file():
        return AuditConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return AuditConfig.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring invalid config file %s – %s", path, exc)
        return AuditConfig()


def build_inputs(
    target: str,
    defaults: AuditDefaults,
    *,
    focus_url: Optional[str] = None,
    focus_keyword: Optional[str] = None,
    focus_goal: Optional[str] = None,
    baseline_run_id: Optional[str] = None,
    **overrides,
) -> AuditInputs:
    """Merge *defaults* with per-run *overrides* into frozen :class:`AuditInputs`.

    ``None`` overrides are ignored so callers can pass optional request
    fields straight through.  A relative *focus_url* is resolved against
    *target*.
    """
    values = defaults.model_dump()
    unknown = set(overrides) - set(values)
    if unknown:
        raise ValueError(f"Unknown audit options: {', '.join(sorted(unknown))}")
    values.update({key: value for key, value in overrides.items() if value is not None})

    resolved_focus = urljoin(target, focus_url) if focus_url else None
    values["focus"] = AuditFocus(
        primary_url=resolved_focus,
        primary_keyword=focus_keyword.strip() if focus_keyword else None,
        goal=focus_goal,
    )
    values["target"] = target
    values["baseline_run_id"] = baseline_run_id
    return AuditInputs(**values)
