"""Fetch-strategy selection: plain HTTP or headless rendering per run."""

import logging
from typing import Awaitable, Callable

import httpx

from app.models.audit_request import AuditInputs
from app.services.browser_fetcher import fetch_page_with_browser
from app.services.fetcher import FetchedPage, fetch_page

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str], Awaitable[FetchedPage]]


def select_fetcher(inputs: AuditInputs, client: httpx.AsyncClient) -> PageFetcher:
    """Return the page fetch function matching ``inputs.rendering_mode``.

    Both strategies produce the same :class:`FetchedPage` contract and
    raise ``ValueError`` / ``RuntimeError`` / transport errors on failure.
    """
    if inputs.rendering_mode == "static_html":

        async def fetch_static(url: str) -> FetchedPage:
            return await fetch_page(
                url,
                client,
                timeout_ms=inputs.timeout_ms,
                block_private=inputs.block_private_addresses,
            )

        return fetch_static

    if inputs.rendering_mode == "headless":
        logger.info("Strategy: headless rendering enabled for %s", inputs.target)

        async def fetch_headless(url: str) -> FetchedPage:
            return await fetch_page_with_browser(
                url,
                timeout_ms=inputs.timeout_ms,
                user_agent=inputs.user_agent,
                block_private=inputs.block_private_addresses,
            )

        return fetch_headless

    raise ValueError(f"Unknown rendering mode: {inputs.rendering_mode!r}")
