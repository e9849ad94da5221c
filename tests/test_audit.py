"""End-to-end audit runs against the fixture site, plus scoring helpers."""

import asyncio
from datetime import datetime, timezone

from app.config import AuditDefaults, build_inputs
from app.models.issue import Issue
from app.services.audit import build_run_id, compute_scores, run_audit
from app.services.consolidator import sort_issues_deterministic
from app.services.fetcher import build_client

SITE = "https://example.test"


def _audit(inputs, transport, events=None):
    async def _go():
        async with build_client(transport=transport) as client:
            return await run_audit(inputs, client=client, on_progress=events.append if events is not None else None)

    return asyncio.run(_go())


def _issue(category: str, severity: str) -> Issue:
    return Issue(id="x", category=category, severity=severity, rank=1, title="x", description="x")


class TestRunAudit:
    def test_report_covers_the_whole_site(self, site_transport, site_inputs):
        report = _audit(site_inputs, site_transport)

        assert report.summary.pages_crawled == 7
        assert len(report.pages) == 7
        assert report.run_id.startswith("run-")
        assert report.seed_discovery.seeds[0] == f"{SITE}/"
        assert report.inputs == site_inputs

    def test_issues_are_consolidated_and_sorted(self, site_transport, site_inputs):
        report = _audit(site_inputs, site_transport)

        assert report.issues == sort_issues_deterministic(report.issues)
        identities = [issue.identity for issue in report.issues]
        assert len(identities) == len(set(identities))

        orphans = [issue for issue in report.issues if issue.id == "orphan_page"]
        assert orphans
        assert f"{SITE}/about" in orphans[0].affected_urls

    def test_scores_and_counts_are_consistent(self, site_transport, site_inputs):
        report = _audit(site_inputs, site_transport)
        summary = report.summary

        assert set(summary.score_by_category) == {"seo", "technical", "content", "security"}
        assert all(0 <= score <= 100 for score in summary.score_by_category.values())
        assert 0 <= summary.score_total <= 100
        assert summary.errors + summary.warnings + summary.notices == len(report.issues)
        assert summary.focus is None
        assert summary.internal_links.orphan_pages_count >= 1

    def test_progress_runs_from_seeds_to_report(self, site_transport, site_inputs):
        events = []
        _audit(site_inputs, site_transport, events)

        stages = [event.stage for event in events]
        percents = [event.percent for event in events]
        assert stages[0] == "seeds"
        assert stages[-1] == "report"
        assert percents[0] == 0
        assert percents[-1] == 100
        assert percents == sorted(percents)
        assert stages.index("crawl") < stages.index("graph") < stages.index("rules")

    def test_focus_summary_and_link_plan(self, site_transport):
        inputs = build_inputs(
            f"{SITE}/",
            AuditDefaults(),
            focus_url="/pricing",
            focus_keyword="pricing plans",
            block_private_addresses=False,
        )
        report = _audit(inputs, site_transport)
        focus = report.summary.focus

        assert focus.primary_url == f"{SITE}/pricing"
        assert focus.focus_inlinks_count == 4
        assert 0 <= focus.focus_score <= 100
        assert len(focus.recommended_next_actions) == len(focus.focus_top_issues)

        already_linking = {f"{SITE}/", f"{SITE}/blog", f"{SITE}/blog/article-a", f"{SITE}/blog/article-b"}
        for item in report.internal_link_plan:
            assert item.source_url not in already_linking
            assert item.source_url != f"{SITE}/pricing"


class TestScoring:
    def test_penalties_per_bucket(self):
        scores = compute_scores(
            [_issue("seo", "error"), _issue("schema", "warning"), _issue("made_up", "notice")]
        )
        assert scores == {"seo": 90, "technical": 93, "content": 100, "security": 100}

    def test_scores_never_go_negative(self):
        scores = compute_scores([_issue("security", "error")] * 15)
        assert scores["security"] == 0

    def test_run_id_is_path_safe(self):
        now = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
        assert build_run_id(now) == "run-2026-01-02T03-04-05-678Z"
