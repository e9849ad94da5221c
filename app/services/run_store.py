"""On-disk run artifacts: ``runs/<run_id>/{inputs,pages,issues,report}.json``."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError

from app.models.report import DiffReport, Report
from app.services.diff import build_diff_report

logger = logging.getLogger(__name__)

RUNS_DIR_ENV_VAR = "SEO_AUDIT_RUNS_DIR"
DEFAULT_RUNS_DIR = "runs"

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def default_runs_dir() -> Path:
    return Path(os.getenv(RUNS_DIR_ENV_VAR) or DEFAULT_RUNS_DIR)


def _run_dir(run_id: str, runs_dir: Union[str, Path]) -> Path:
    # run ids come straight from URLs; keep them inside runs_dir
    if not _RUN_ID_RE.match(run_id):
        raise ValueError(f"Invalid run id: {run_id!r}")
    return Path(runs_dir) / run_id


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def write_run_artifacts(report: Report, runs_dir: Union[str, Path]) -> Path:
    """Persist *report* and its parts; returns the run directory."""
    run_dir = _run_dir(report.run_id, runs_dir)
    run_dir.mkdir(parents=True, exist_ok=True)

    payload = report.model_dump(mode="json")
    _write_json(run_dir / "inputs.json", payload["inputs"])
    _write_json(run_dir / "pages.json", payload["page_extracts"])
    _write_json(run_dir / "issues.json", payload["issues"])
    _write_json(run_dir / "report.json", payload)

    logger.info("Run artifacts written to %s", run_dir)
    return run_dir


def write_diff_artifact(diff: DiffReport, runs_dir: Union[str, Path]) -> Path:
    """Store *diff* as ``diff.json`` inside the current run's directory."""
    run_dir = _run_dir(diff.current_run_id, runs_dir)
    run_dir.mkdir(parents=True, exist_ok=True)
    path = run_dir / "diff.json"
    _write_json(path, diff.model_dump(mode="json"))
    return path


def load_report_from_run(run_id: str, runs_dir: Union[str, Path]) -> Report:
    """Load ``report.json`` of *run_id*.

    Raises:
        FileNotFoundError: the run does not exist.
        ValueError: the run id is malformed or the stored report is unreadable.
    """
    path = _run_dir(run_id, runs_dir) / "report.json"
    if not path.is_file():
        raise FileNotFoundError(f"Run not found: {run_id}")
    try:
        return Report.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as exc:
        logger.warning("Stored report for %s is invalid – %s", run_id, exc)
        raise ValueError(f"Stored report for {run_id} is invalid") from exc


def load_diff_from_runs(baseline_run_id: str, current_run_id: str, runs_dir: Union[str, Path]) -> DiffReport:
    baseline = load_report_from_run(baseline_run_id, runs_dir)
    current = load_report_from_run(current_run_id, runs_dir)
    return build_diff_report(baseline, current)
