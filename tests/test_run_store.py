"""Tests for on-disk run artifacts."""

import json

import pytest

from app.models.audit_request import AuditInputs
from app.models.issue import Issue
from app.models.page import PageExtract
from app.models.report import Report, Summary
from app.services.run_store import (
    load_diff_from_runs,
    load_report_from_run,
    write_diff_artifact,
    write_run_artifacts,
)


def _report(run_id: str, issue_ids=("missing_title",)) -> Report:
    return Report(
        run_id=run_id,
        started_at="2026-01-01T00:00:00+00:00",
        finished_at="2026-01-01T00:01:00+00:00",
        inputs=AuditInputs(target="https://example.com/"),
        summary=Summary(
            score_total=90,
            score_by_category={"seo": 90},
            pages_crawled=1,
            errors=0,
            warnings=len(issue_ids),
            notices=0,
        ),
        issues=[
            Issue(
                id=issue_id,
                category="seo",
                severity="warning",
                rank=5,
                title=issue_id,
                description=issue_id,
                affected_urls=["https://example.com/"],
            )
            for issue_id in issue_ids
        ],
        pages=[],
        page_extracts=[PageExtract(url="https://example.com/", final_url="https://example.com/", status=200)],
    )


class TestRunArtifacts:
    def test_writes_every_artifact(self, tmp_path):
        run_dir = write_run_artifacts(_report("run-1"), tmp_path)

        assert run_dir == tmp_path / "run-1"
        for name in ("inputs.json", "pages.json", "issues.json", "report.json"):
            assert (run_dir / name).is_file()
        pages = json.loads((run_dir / "pages.json").read_text(encoding="utf-8"))
        assert pages[0]["url"] == "https://example.com/"

    def test_report_round_trips(self, tmp_path):
        report = _report("run-1")
        write_run_artifacts(report, tmp_path)
        assert load_report_from_run("run-1", tmp_path) == report

    def test_missing_run_raises_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_report_from_run("run-missing", tmp_path)

    def test_run_id_cannot_escape_runs_dir(self, tmp_path):
        with pytest.raises(ValueError):
            load_report_from_run("../etc", tmp_path)

    def test_corrupt_report_raises_value_error(self, tmp_path):
        (tmp_path / "run-bad").mkdir()
        (tmp_path / "run-bad" / "report.json").write_text('{"run_id": 1}', encoding="utf-8")
        with pytest.raises(ValueError):
            load_report_from_run("run-bad", tmp_path)


class TestDiffArtifacts:
    def test_diff_between_stored_runs(self, tmp_path):
        write_run_artifacts(_report("run-1", ["missing_title", "missing_h1"]), tmp_path)
        write_run_artifacts(_report("run-2", ["missing_title", "orphan_page"]), tmp_path)

        diff = load_diff_from_runs("run-1", "run-2", tmp_path)
        path = write_diff_artifact(diff, tmp_path)

        assert diff.resolved_issues == ["missing_h1"]
        assert diff.new_issues == ["orphan_page"]
        assert path == tmp_path / "run-2" / "diff.json"
        assert json.loads(path.read_text(encoding="utf-8"))["baseline_run_id"] == "run-1"
