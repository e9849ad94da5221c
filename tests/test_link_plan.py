"""Tests for build_deterministic_internal_link_plan."""

from app.models.page import InternalOutlink, PageExtract
from app.services.link_graph import build_deterministic_internal_link_plan

_BASE = "https://example.com"
_FOCUS = f"{_BASE}/services/couples-therapy"


def _page(path: str, title: str = "", text: str = "", links=(), status: int = 200) -> PageExtract:
    url = f"{_BASE}{path}"
    return PageExtract(
        url=url,
        final_url=url,
        status=status,
        title_text=title,
        main_text=text,
        outlinks_internal=[InternalOutlink(target_url=target) for target in links],
    )


class TestLinkPlan:
    def test_excludes_focus_and_pages_already_linking(self):
        pages = [
            _page("/services/couples-therapy", "Couples therapy", "Couples therapy in Warsaw."),
            _page("/blog/already", "Couples therapy tips", "Couples therapy basics.", links=[_FOCUS]),
            _page("/blog/candidate", "Relationship advice", "When couples therapy helps."),
        ]
        plan = build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy")
        assert [item.source_url for item in plan] == [f"{_BASE}/blog/candidate"]

    def test_phrase_match_outranks_partial_overlap(self):
        pages = [
            _page("/a", "Therapy for individuals", "Individual therapy explained."),
            _page("/b", "Blog", "Many couples therapy clients ask about cost. Another sentence."),
            _page("/c", "Unrelated", "Gardening in spring."),
        ]
        plan = build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy")

        assert [item.source_url for item in plan] == [f"{_BASE}/b", f"{_BASE}/a"]
        assert plan[0].suggested_anchor == "couples therapy"
        assert plan[0].suggested_sentence_context == "Many couples therapy clients ask about cost."
        assert plan[1].suggested_anchor == "therapy"

    def test_ties_break_by_source_url(self):
        pages = [
            _page("/z", "Therapy", "Therapy notes."),
            _page("/m", "Therapy", "Therapy notes."),
        ]
        plan = build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy")
        assert [item.source_url for item in plan] == [f"{_BASE}/m", f"{_BASE}/z"]

    def test_max_items_caps_result(self):
        pages = [_page(f"/p{i}", "Couples therapy", "Couples therapy.") for i in range(8)]
        plan = build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy", max_items=3)
        assert len(plan) == 3

    def test_same_input_same_plan(self):
        pages = [_page(f"/p{i}", "Therapy", f"Therapy article {i}.") for i in range(6)]
        first = build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy")
        second = build_deterministic_internal_link_plan(list(reversed(pages)), _FOCUS, "couples therapy")
        assert first == second

    def test_missing_keyword_or_focus_returns_empty(self):
        pages = [_page("/a", "Therapy", "Therapy.")]
        assert build_deterministic_internal_link_plan(pages, _FOCUS, None) == []
        assert build_deterministic_internal_link_plan(pages, None, "therapy") == []

    def test_failed_pages_are_not_candidates(self):
        pages = [_page("/gone", "Couples therapy", "Couples therapy.", status=404)]
        assert build_deterministic_internal_link_plan(pages, _FOCUS, "couples therapy") == []
