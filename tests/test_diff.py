"""Tests for app.services.diff.build_diff_report."""

from app.models.audit_request import AuditInputs
from app.models.issue import Issue
from app.models.report import Report, Summary
from app.services.diff import aggregate_issues_by_id, build_diff_report


def _issue(id, severity="warning", urls=("https://x/a",)):
    return Issue(
        id=id,
        category="seo",
        severity=severity,
        rank=5,
        title=id,
        description=f"{id} {severity}",
        affected_urls=list(urls),
    )


def _report(run_id, issues, scores, pages_crawled=10):
    return Report(
        run_id=run_id,
        started_at="2026-01-01T00:00:00+00:00",
        finished_at="2026-01-01T00:01:00+00:00",
        inputs=AuditInputs(target="https://x/"),
        summary=Summary(
            score_total=sum(scores.values()) // max(1, len(scores)),
            score_by_category=scores,
            pages_crawled=pages_crawled,
            errors=0,
            warnings=0,
            notices=0,
        ),
        issues=issues,
        pages=[],
    )


class TestAggregate:
    def test_counts_urls_and_keeps_worst_severity(self):
        aggregates = aggregate_issues_by_id(
            [
                _issue("title_length_out_of_range", "warning", ["https://x/a", "https://x/b"]),
                _issue("title_length_out_of_range", "error", ["https://x/c"]),
            ]
        )
        assert aggregates["title_length_out_of_range"].count == 3
        assert aggregates["title_length_out_of_range"].max_severity == "error"


class TestBuildDiffReport:
    def test_resolved_new_and_regressed(self):
        baseline = _report(
            "run-a",
            [_issue("fixed"), _issue("kept"), _issue("worse", "notice"), _issue("spread")],
            {"seo": 80, "technical": 90},
            pages_crawled=10,
        )
        current = _report(
            "run-b",
            [
                _issue("kept"),
                _issue("worse", "error"),
                _issue("spread", urls=["https://x/a", "https://x/b"]),
                _issue("fresh"),
            ],
            {"seo": 85, "security": 70},
            pages_crawled=12,
        )

        diff = build_diff_report(baseline, current)

        assert diff.resolved_issues == ["fixed"]
        assert diff.new_issues == ["fresh"]
        assert [delta.id for delta in diff.regressed_issues] == ["spread", "worse"]
        worse = diff.regressed_issues[1]
        assert (worse.baseline_max_severity, worse.current_max_severity) == ("notice", "error")
        assert diff.score_by_category_delta == {"security": 70, "seo": 5, "technical": -90}
        assert diff.pages_crawled_delta == 2
        assert diff.baseline_run_id == "run-a"
        assert diff.current_run_id == "run-b"

    def test_identical_reports_have_no_changes(self):
        report = _report("run-a", [_issue("kept")], {"seo": 80})
        diff = build_diff_report(report, report)
        assert diff.resolved_issues == []
        assert diff.new_issues == []
        assert diff.regressed_issues == []
        assert diff.score_total_delta == 0
