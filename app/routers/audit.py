import logging

import httpx
from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import AuditConfig, build_inputs, load_config
from app.models.audit_request import AuditInputs, AuditRequest, DiffRequest
from app.models.report import DiffReport, Report
from app.services.audit import run_audit
from app.services.crawler import CrawlSeedError
from app.services.diff import build_diff_report
from app.services.run_store import (
    default_runs_dir,
    load_diff_from_runs,
    load_report_from_run,
    write_diff_artifact,
    write_run_artifacts,
)

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()


@router.post(
    "/audits",
    response_model=Report,
    summary="Crawl a site and run the SEO audit",
    description=(
        "Discovers seeds from *url*, robots.txt and sitemaps, crawls within the "
        "configured scope, builds the internal link graph and runs every rule.  "
        "The finished report is stored under its `run_id`; when "
        "`baseline_run_id` is given a diff against that run is stored too."
    ),
)
@limiter.limit("2/minute")
async def create_audit(request: Request, body: AuditRequest) -> Report:
    url = str(body.url)
    logger.info(
        "Audit request received",
        extra={"url": url, "coverage": body.coverage, "max_pages": body.max_pages},
    )

    config = load_config()
    try:
        inputs = _build_inputs(url, body, config)
        report = await run_audit(inputs)
    except ValueError as exc:
        logger.warning("Invalid audit request for %s – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except httpx.TimeoutException:
        logger.error("Timeout while auditing %s", url)
        raise HTTPException(status_code=504, detail="Timed out while fetching the site.")
    except (CrawlSeedError, httpx.RequestError) as exc:
        logger.error("Audit failed for %s: %s", url, exc)
        raise HTTPException(status_code=502, detail=str(exc))

    runs_dir = default_runs_dir()
    write_run_artifacts(report, runs_dir)

    if inputs.baseline_run_id:
        try:
            baseline = load_report_from_run(inputs.baseline_run_id, runs_dir)
            write_diff_artifact(build_diff_report(baseline, report), runs_dir)
        except (FileNotFoundError, ValueError) as exc:
            logger.warning("Skipping diff against %s – %s", inputs.baseline_run_id, exc)

    return report


@router.get("/audits/{run_id}", response_model=Report, summary="Load a stored audit report")
async def get_audit(run_id: str) -> Report:
    try:
        return load_report_from_run(run_id, default_runs_dir())
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/audits/diff", response_model=DiffReport, summary="Compare two stored audit runs")
async def diff_audits(body: DiffRequest) -> DiffReport:
    """Resolved, new and regressed issues plus score deltas between two runs."""
    try:
        return load_diff_from_runs(body.baseline_run_id, body.current_run_id, default_runs_dir())
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _build_inputs(url: str, body: AuditRequest, config: AuditConfig) -> AuditInputs:
    return build_inputs(
        url,
        config.defaults,
        focus_url=body.focus_url,
        focus_keyword=body.focus_keyword,
        focus_goal=body.focus_goal,
        baseline_run_id=body.baseline_run_id,
        coverage=body.coverage,
        max_pages=body.max_pages,
        crawl_depth=body.depth,
        respect_robots=body.respect_robots,
        rendering_mode=body.rendering_mode,
        include_serp=body.include_serp,
        focus_inlinks_threshold=body.focus_inlinks_threshold,
        service_min_words=body.service_min_words,
        generic_anchors=body.generic_anchors,
    )
