"""Tests for issue consolidation and deterministic ordering."""

from app.models.issue import Evidence, Issue
from app.services.consolidator import consolidate_issues, sort_issues_deterministic


def _issue(id="rule", severity="warning", rank=5, description="desc", urls=(), tags=("global",), evidence=()):
    return Issue(
        id=id,
        category="seo",
        severity=severity,
        rank=rank,
        title=f"Title of {id}",
        description=description,
        affected_urls=list(urls),
        evidence=[Evidence(type="content", message=message) for message in evidence],
        tags=list(tags),
    )


class TestConsolidateIssues:
    def test_merges_same_identity(self):
        merged = consolidate_issues(
            [
                _issue(urls=["https://x/b"], evidence=["first"], rank=3, tags=["global"]),
                _issue(urls=["https://x/a", "https://x/b"], evidence=["second"], rank=6, tags=["focus"]),
            ]
        )
        assert len(merged) == 1
        issue = merged[0]
        assert issue.affected_urls == ["https://x/a", "https://x/b"]
        assert [evidence.message for evidence in issue.evidence] == ["first", "second"]
        assert issue.rank == 6
        assert issue.tags == ["focus", "global"]

    def test_description_is_part_of_identity(self):
        merged = consolidate_issues(
            [
                _issue(description="Title is too short.", urls=["https://x/a"]),
                _issue(description="Title is longer than 70 characters.", urls=["https://x/b"]),
            ]
        )
        assert len(merged) == 2

    def test_single_issue_gets_sorted_urls(self):
        (issue,) = consolidate_issues([_issue(urls=["https://x/b", "https://x/a", "https://x/b"])])
        assert issue.affected_urls == ["https://x/a", "https://x/b"]

    def test_empty_input(self):
        assert consolidate_issues([]) == []


class TestSortIssuesDeterministic:
    def test_severity_then_rank_then_id_then_url(self):
        issues = [
            _issue(id="b_notice", severity="notice", rank=9, urls=["https://x/a"]),
            _issue(id="b_warning", severity="warning", rank=5, urls=["https://x/a"]),
            _issue(id="a_warning", severity="warning", rank=5, urls=["https://x/z"]),
            _issue(id="c_warning", severity="warning", rank=7, urls=["https://x/a"]),
            _issue(id="z_error", severity="error", rank=1, urls=["https://x/a"]),
        ]
        ordered = [issue.id for issue in sort_issues_deterministic(issues)]
        assert ordered == ["z_error", "c_warning", "a_warning", "b_warning", "b_notice"]

    def test_first_url_breaks_remaining_ties(self):
        issues = [
            _issue(description="two", urls=["https://x/b"]),
            _issue(description="one", urls=["https://x/a"]),
        ]
        ordered = sort_issues_deterministic(issues)
        assert [issue.affected_urls[0] for issue in ordered] == ["https://x/a", "https://x/b"]

    def test_input_order_does_not_matter(self):
        issues = [_issue(id=f"rule_{i}", rank=i % 3, urls=[f"https://x/{i}"]) for i in range(6)]
        assert sort_issues_deterministic(issues) == sort_issues_deterministic(list(reversed(issues)))
