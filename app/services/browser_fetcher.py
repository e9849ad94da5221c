"""Playwright-based page fetch strategy for the ``headless`` rendering mode.

Produces the same :class:`~app.services.fetcher.FetchedPage` contract as the
plain HTTP fetcher so the crawler does not care which one ran.
"""

from playwright.async_api import async_playwright

from app.services.fetcher import MAX_CONTENT_SIZE, FetchedPage, validate_url

DEFAULT_TIMEOUT_MS = 30_000


async def fetch_page_with_browser(
    url: str,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    user_agent: str | None = None,
    block_private: bool = True,
) -> FetchedPage:
    """Render *url* with a headless Chromium browser.

    Raises:
        ValueError: if the URL fails SSRF / scheme validation.
        RuntimeError: if no response was received or the rendered HTML
            exceeds MAX_CONTENT_SIZE.
        playwright.async_api.Error: on browser/network errors.
    """
    validate_url(url, block_private=block_private)

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(
            headless=True,
            args=[
                # --no-sandbox is required when running as root inside a container
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-gpu",
            ],
        )
        context = await browser.new_context(user_agent=user_agent)
        page = await context.new_page()
        try:
            response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            if response is None:
                raise RuntimeError(f"No response received for {url}.")
            html = await page.content()
            headers = {key.lower(): value for key, value in (await response.all_headers()).items()}
            status = response.status
            final_url = page.url
        finally:
            await context.close()
            await browser.close()

    if len(html.encode()) > MAX_CONTENT_SIZE:
        raise RuntimeError("Rendered HTML exceeds the maximum allowed size.")

    return FetchedPage(
        url=url,
        final_url=final_url,
        status=status,
        headers=headers,
        content_type=headers.get("content-type", ""),
        html=html,
    )
