"""Issue consolidation and deterministic ordering."""

from typing import Dict, List, Tuple

from app.models.issue import SEVERITY_ORDER, Issue


def consolidate_issues(issues: List[Issue]) -> List[Issue]:
    """Merge issues sharing ``(id, title, description)``.

    Affected URLs and tags become sorted unions, evidence lists are
    concatenated in input order and the highest rank wins.  The result is
    returned in deterministic order.
    """
    groups: Dict[Tuple[str, str, str], List[Issue]] = {}
    for issue in issues:
        groups.setdefault(issue.identity, []).append(issue)

    merged: List[Issue] = []
    for members in groups.values():
        first = members[0]
        if len(members) == 1:
            merged.append(
                first.model_copy(
                    update={
                        "affected_urls": sorted(set(first.affected_urls)),
                        "tags": sorted(set(first.tags)),
                    }
                )
            )
            continue
        merged.append(
            first.model_copy(
                update={
                    "affected_urls": sorted({url for member in members for url in member.affected_urls}),
                    "tags": sorted({tag for member in members for tag in member.tags}),
                    "evidence": [evidence for member in members for evidence in member.evidence],
                    "rank": max(member.rank for member in members),
                }
            )
        )

    return sort_issues_deterministic(merged)


def _sort_key(issue: Issue) -> tuple:
    first_url = issue.affected_urls[0] if issue.affected_urls else ""
    return (-SEVERITY_ORDER[issue.severity], -issue.rank, issue.id, first_url)


def sort_issues_deterministic(issues: List[Issue]) -> List[Issue]:
    """Severity desc, rank desc, id asc, first affected URL asc."""
    return sorted(issues, key=_sort_key)
