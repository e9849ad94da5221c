"""Tests for app.services.link_graph.build_internal_link_graph."""

from app.models.page import InternalOutlink, PageExtract
from app.services.link_graph import (
    anchor_stats_by_target,
    build_internal_link_graph,
    collect_inlink_relationships,
)

_BASE = "https://example.com"


def _link(target: str, anchor: str = "", nav: bool = False, occurrences: int = 1) -> InternalOutlink:
    return InternalOutlink(target_url=f"{_BASE}{target}", anchor_text=anchor, is_nav_likely=nav, occurrences=occurrences)


def _page(path: str, *links: InternalOutlink, status: int = 200) -> PageExtract:
    url = f"{_BASE}{path}"
    return PageExtract(url=url, final_url=url, status=status, outlinks_internal=list(links))


def _by_url(graph, path):
    return next(page for page in graph.pages if page.final_url == f"{_BASE}{path}")


class TestInlinkCounting:
    def test_counts_distinct_source_pages(self):
        pages = [
            _page("/", _link("/target", "Target"), _link("/target", "Read more")),
            _page("/a", _link("/target", "Target", occurrences=5)),
            _page("/target"),
        ]
        graph = build_internal_link_graph(pages)
        assert _by_url(graph, "/target").inlinks_count == 2

    def test_self_links_do_not_count(self):
        pages = [_page("/", _link("/a")), _page("/a", _link("/a", "Self"))]
        graph = build_internal_link_graph(pages)
        assert _by_url(graph, "/a").inlinks_count == 1

    def test_input_pages_are_not_mutated(self):
        pages = [_page("/", _link("/a")), _page("/a")]
        build_internal_link_graph(pages)
        assert pages[1].inlinks_count == 0


class TestOccurrenceInvariance:
    def test_occurrences_never_change_percentages(self):
        single = [
            _page("/", _link("/a", "click here", nav=True), _link("/a", "Pricing plans")),
            _page("/a"),
        ]
        inflated = [
            _page("/", _link("/a", "click here", nav=True, occurrences=40), _link("/a", "Pricing plans", occurrences=2)),
            _page("/a"),
        ]
        left = build_internal_link_graph(single).internal_links_summary
        right = build_internal_link_graph(inflated).internal_links_summary
        assert left == right
        assert left.nav_likely_inlinks_percent == 50
        assert left.percent_generic_anchors == 50


class TestAnchorAggregation:
    def test_anchors_are_case_normalized_and_sorted(self):
        pages = [
            _page("/", _link("/a", "Pricing"), _link("/a", "")),
            _page("/b", _link("/a", "pricing")),
            _page("/c", _link("/a", "about")),
            _page("/a"),
        ]
        graph = build_internal_link_graph(pages)
        top = [(item.anchor, item.count) for item in _by_url(graph, "/a").inlinks_anchors_top]
        # count desc, then anchor asc with the empty anchor first among equals
        assert top == [("pricing", 2), ("", 1), ("about", 1)]

    def test_relationship_is_nav_likely_if_any_record_is(self):
        pages = [
            _page("/", _link("/a", "Shop", nav=True), _link("/a", "Shop", nav=False)),
            _page("/a"),
        ]
        relationships = collect_inlink_relationships(pages)
        assert len(relationships) == 1
        assert relationships[0].is_nav_likely is True

    def test_anchor_stats_by_target(self):
        pages = [
            _page("/", _link("/a", "read more"), _link("/a", "")),
            _page("/b", _link("/a", "Our services")),
            _page("/a"),
        ]
        stats = anchor_stats_by_target(pages)[f"{_BASE}/a"]
        assert (stats.total, stats.generic, stats.empty) == (3, 1, 1)

    def test_custom_generic_lexicon(self):
        pages = [_page("/", _link("/a", "Go")), _page("/a")]
        stats = anchor_stats_by_target(pages, ["go"])[f"{_BASE}/a"]
        assert stats.generic == 1


class TestOrphans:
    def test_orphan_and_near_orphan_counts(self):
        pages = [
            _page("/", _link("/linked-once"), _link("/linked-twice")),
            _page("/other", _link("/linked-twice")),
            _page("/linked-once"),
            _page("/linked-twice"),
        ]
        summary = build_internal_link_graph(pages).internal_links_summary
        # /other is the only orphan; the root is exempt
        assert summary.orphan_pages_count == 1
        assert summary.near_orphan_pages_count == 1

    def test_root_is_never_an_orphan(self):
        summary = build_internal_link_graph([_page("/")]).internal_links_summary
        assert summary.orphan_pages_count == 0
        assert summary.near_orphan_pages_count == 0

    def test_failed_pages_are_not_classified(self):
        pages = [_page("/"), _page("/gone", status=404)]
        summary = build_internal_link_graph(pages).internal_links_summary
        assert summary.orphan_pages_count == 0


class TestFocus:
    def test_focus_sources_and_anchor_quality(self):
        pages = [
            _page("/", _link("/focus", "click here")),
            _page("/b", _link("/focus", "Therapy"), _link("/focus", "therapy sessions")),
            _page("/c", _link("/focus", "")),
            _page("/focus"),
        ]
        graph = build_internal_link_graph(pages, focus_url=f"{_BASE}/focus")

        assert graph.focus_inlinks_count == 3
        # /b contributes two relationships, the rest tie and sort by URL
        assert graph.top_inlink_sources_to_focus == [f"{_BASE}/b", f"{_BASE}/", f"{_BASE}/c"]
        quality = graph.focus_anchor_quality
        assert quality.percent_generic_anchors == 25
        assert quality.percent_empty_anchors == 25

    def test_no_focus_leaves_defaults(self):
        graph = build_internal_link_graph([_page("/")])
        assert graph.focus_inlinks_count == 0
        assert graph.focus_anchor_quality is None
