"""Tests for the frontier crawler, run against the fixture site in conftest."""

import asyncio

import httpx
import pytest

from app.config import AuditDefaults, build_inputs
from app.services.crawler import CrawlSeedError, _should_skip, crawl_site
from app.services.fetcher import FetchedPage, build_client

SITE = "https://example.test"
SEEDS = [f"{SITE}/", f"{SITE}/about", f"{SITE}/pricing"]


def _crawl(inputs, transport, seeds=SEEDS, **kwargs):
    async def go():
        async with build_client(transport=transport) as client:
            return await crawl_site(inputs, seeds, client=client, **kwargs)

    return asyncio.run(go())


class TestCrawlSite:
    def test_visits_every_page_once(self, site_transport, site_inputs):
        pages = _crawl(site_inputs, site_transport)
        urls = [page.url for page in pages]

        assert len(pages) == 7
        assert len(set(urls)) == 7
        assert urls[:3] == SEEDS
        # the utm-tagged link collapses onto /blog
        assert not any("utm_source" in url for url in urls)
        assert f"{SITE}/blog?page=2" in urls

    def test_repeated_links_are_one_record_with_occurrences(self, site_transport, site_inputs):
        pages = _crawl(site_inputs, site_transport)
        article = next(page for page in pages if page.url == f"{SITE}/blog/article-a")
        to_pricing = [link for link in article.outlinks_internal if link.target_url == f"{SITE}/pricing"]

        assert len(to_pricing) == 1
        assert to_pricing[0].occurrences == 3
        assert to_pricing[0].anchor_text == "see pricing"

    def test_max_pages_is_a_hard_cap(self, site_transport):
        inputs = build_inputs(f"{SITE}/", AuditDefaults(), max_pages=4, block_private_addresses=False)
        pages = _crawl(inputs, site_transport)
        assert len(pages) == 4

    def test_depth_zero_fetches_only_seeds(self, site_transport):
        inputs = build_inputs(f"{SITE}/", AuditDefaults(), crawl_depth=0, block_private_addresses=False)
        pages = _crawl(inputs, site_transport)
        assert [page.url for page in pages] == SEEDS

    def test_quick_coverage_never_follows_links(self, site_transport):
        inputs = build_inputs(f"{SITE}/", AuditDefaults(), coverage="quick", block_private_addresses=False)
        pages = _crawl(inputs, site_transport, seeds=[f"{SITE}/"])
        assert [page.url for page in pages] == [f"{SITE}/"]

    def test_exclude_pattern_limits_scope(self, site_transport):
        inputs = build_inputs(
            f"{SITE}/", AuditDefaults(), exclude_patterns=["/blog"], block_private_addresses=False
        )
        pages = _crawl(inputs, site_transport)
        assert all("/blog" not in page.url for page in pages)

    def test_robots_rules_block_links(self, site_transport, site_inputs):
        pages = _crawl(site_inputs, site_transport, robots_disallow=["/blog/"])
        urls = [page.url for page in pages]
        assert f"{SITE}/blog" in urls
        assert f"{SITE}/blog/article-a" not in urls

    def test_progress_events_stay_in_crawl_band(self, site_transport, site_inputs):
        events = []
        _crawl(site_inputs, site_transport, on_progress=events.append)

        assert len(events) == 7
        assert all(event.stage == "crawl" for event in events)
        percents = [event.percent for event in events]
        assert percents == sorted(percents)
        assert 10 <= percents[0] and percents[-1] <= 60

    def test_failed_page_becomes_record(self, site_inputs):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/":
                return httpx.Response(200, html='<html><body><a href="/down">Down</a></body></html>')
            raise httpx.ConnectError("connection refused", request=request)

        pages = _crawl(site_inputs, httpx.MockTransport(handler), seeds=[f"{SITE}/"])

        assert len(pages) == 2
        failed = pages[1]
        assert failed.url == f"{SITE}/down"
        assert failed.status is None
        assert "connection refused" in failed.fetch_error

    def test_unreachable_start_url_raises(self, site_inputs):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        with pytest.raises(CrawlSeedError):
            _crawl(site_inputs, httpx.MockTransport(handler), seeds=[f"{SITE}/"])

    def test_redirect_to_visited_page_is_skipped(self, site_inputs):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "/"})
            return httpx.Response(200, html='<html><body><a href="/old">Old</a></body></html>')

        pages = _crawl(site_inputs, httpx.MockTransport(handler), seeds=[f"{SITE}/"])
        assert [page.url for page in pages] == [f"{SITE}/"]

    def test_custom_fetcher_is_used(self, site_inputs):
        calls = []

        async def fetcher(url: str) -> FetchedPage:
            calls.append(url)
            return FetchedPage(url, url, 200, {}, "text/html", "<html><title>Stub</title></html>")

        async def go():
            return await crawl_site(site_inputs, [f"{SITE}/"], fetcher=fetcher)

        pages = asyncio.run(go())
        assert calls == [f"{SITE}/"]
        assert pages[0].title == "Stub"

    def test_non_html_documents_are_not_parsed(self, site_inputs):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"})

        pages = _crawl(site_inputs, httpx.MockTransport(handler), seeds=[f"{SITE}/"])
        assert pages[0].status == 200
        assert pages[0].title is None
        assert pages[0].content_type == "application/pdf"


class TestShouldSkip:
    def test_skips_admin_feed_and_cart(self):
        assert _should_skip("https://example.com/wp-admin/options.php")
        assert _should_skip("https://example.com/blog/feed/")
        assert _should_skip("https://example.com/cart")
        assert _should_skip("https://example.com/shop?add-to-cart=12")

    def test_keeps_content_pages(self):
        assert not _should_skip("https://example.com/blog/post-title/")
        assert not _should_skip("https://example.com/services")
