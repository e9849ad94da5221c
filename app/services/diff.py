"""Structural comparison of two completed audit reports."""

from typing import Dict, List, NamedTuple

from app.models.issue import SEVERITY_ORDER, Issue
from app.models.report import DiffReport, IssueDelta, Report


class IssueAggregate(NamedTuple):
    count: int
    max_severity: str


def aggregate_issues_by_id(issues: List[Issue]) -> Dict[str, IssueAggregate]:
    """Per rule id: total affected URLs and the worst severity seen."""
    aggregates: Dict[str, IssueAggregate] = {}
    for issue in issues:
        existing = aggregates.get(issue.id)
        if existing is None:
            aggregates[issue.id] = IssueAggregate(len(issue.affected_urls), issue.severity)
            continue
        worst = (
            issue.severity
            if SEVERITY_ORDER[issue.severity] > SEVERITY_ORDER[existing.max_severity]
            else existing.max_severity
        )
        aggregates[issue.id] = IssueAggregate(existing.count + len(issue.affected_urls), worst)
    return aggregates


def build_diff_report(baseline: Report, current: Report) -> DiffReport:
    """Compare *current* against *baseline*.

    An id present only in the baseline is resolved; only in the current
    run it is new.  A shared id regresses when its worst severity rises or
    it affects more URLs than before.
    """
    baseline_issues = aggregate_issues_by_id(baseline.issues)
    current_issues = aggregate_issues_by_id(current.issues)

    resolved: List[str] = []
    new: List[str] = []
    regressed: List[IssueDelta] = []
    for issue_id in sorted(set(baseline_issues) | set(current_issues)):
        before = baseline_issues.get(issue_id)
        after = current_issues.get(issue_id)
        if after is None:
            resolved.append(issue_id)
            continue
        if before is None:
            new.append(issue_id)
            continue
        worse_severity = SEVERITY_ORDER[after.max_severity] > SEVERITY_ORDER[before.max_severity]
        if worse_severity or after.count > before.count:
            regressed.append(
                IssueDelta(
                    id=issue_id,
                    baseline_count=before.count,
                    current_count=after.count,
                    baseline_max_severity=before.max_severity,
                    current_max_severity=after.max_severity,
                )
            )

    baseline_scores = baseline.summary.score_by_category
    current_scores = current.summary.score_by_category
    category_delta = {
        category: current_scores.get(category, 0) - baseline_scores.get(category, 0)
        for category in sorted(set(baseline_scores) | set(current_scores))
    }

    return DiffReport(
        baseline_run_id=baseline.run_id,
        current_run_id=current.run_id,
        score_total_delta=current.summary.score_total - baseline.summary.score_total,
        score_by_category_delta=category_delta,
        pages_crawled_delta=current.summary.pages_crawled - baseline.summary.pages_crawled,
        resolved_issues=resolved,
        new_issues=new,
        regressed_issues=regressed,
    )
