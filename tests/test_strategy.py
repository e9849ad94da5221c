"""Tests for per-run fetch strategy selection."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.config import AuditDefaults, build_inputs
from app.services.fetcher import FetchedPage, build_client
from app.services.strategy import select_fetcher

_URL = "https://example.test/"

_RENDERED = FetchedPage(
    url=_URL,
    final_url=_URL,
    status=200,
    headers={"content-type": "text/html"},
    content_type="text/html",
    html="<html><body><h1>Rendered</h1></body></html>",
)


def _inputs(**overrides):
    return build_inputs(_URL, AuditDefaults(), block_private_addresses=False, **overrides)


def _fetch(inputs, transport):
    async def go():
        async with build_client(transport=transport) as client:
            return await select_fetcher(inputs, client)(_URL)

    return asyncio.run(go())


class TestSelectFetcher:
    def test_static_html_uses_http_client(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, html="<h1>Static</h1>"))
        with patch(
            "app.services.strategy.fetch_page_with_browser",
            new=AsyncMock(side_effect=AssertionError("browser must not be called")),
        ):
            page = _fetch(_inputs(), transport)

        assert page.status == 200
        assert "Static" in page.html

    def test_headless_uses_browser(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        mock = AsyncMock(return_value=_RENDERED)
        with patch("app.services.strategy.fetch_page_with_browser", new=mock):
            page = _fetch(_inputs(rendering_mode="headless", timeout_ms=5000), transport)

        assert page is _RENDERED
        assert mock.call_args.kwargs["timeout_ms"] == 5000
        assert mock.call_args.kwargs["block_private"] is False

    def test_unknown_mode_raises(self):
        inputs = _inputs().model_copy(update={"rendering_mode": "javascript"})
        with pytest.raises(ValueError, match="Unknown rendering mode"):
            select_fetcher(inputs, httpx.AsyncClient())
