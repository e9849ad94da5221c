"""Shared fixtures: a small paginated site served through ``httpx.MockTransport``.

Layout of https://example.test::

    /                 → /blog (nav), /pricing (nav), /blog?utm_source=news
    /about            → external partner link; reachable only via sitemap
    /pricing
    /blog             → /blog/article-a, /blog?page=2, /pricing
    /blog?page=2      → /blog/article-b, /blog
    /blog/article-a   → /pricing three times with the same anchor
    /blog/article-b   → /pricing

robots.txt declares the sitemap and disallows /private.
"""

import httpx
import pytest

from app.config import AuditDefaults, build_inputs

SITE = "https://example.test"

SHARED_PARAGRAPH = (
    "Every project starts with a short discovery call where we agree on scope, "
    "budget and the timeline for the first release."
)


def _html(title: str, body: str, lang: str = "en") -> str:
    return (
        f'<!DOCTYPE html><html lang="{lang}"><head><title>{title}</title>'
        '<meta name="description" content="Example Studio designs and builds fast websites for '
        'small companies across Europe.">'
        f"</head><body>{body}</body></html>"
    )


_NAV = (
    '<nav class="main-menu"><a href="/">Home</a><a href="/blog">Blog</a>'
    '<a href="/pricing">Pricing</a></nav>'
)

SITE_PAGES = {
    "/": _html(
        "Example Studio | Web design and development",
        _NAV
        + "<main><h1>Web design and development</h1>"
        "<p>Example Studio builds fast websites for small companies. Read the "
        '<a href="/blog?utm_source=news">latest articles</a> on our blog.</p></main>',
    ),
    "/about": _html(
        "About Example Studio and our small team",
        "<main><h1>About us</h1><p>We are a team of four designers and developers.</p>"
        '<p><a href="https://partner.test/">Our hosting partner</a></p></main>',
    ),
    "/pricing": _html(
        "Pricing for website design projects",
        "<main><h1>Pricing</h1><p>Plans start at 99 EUR per month.</p></main>",
    ),
    "/blog": _html(
        "Blog about web design and development",
        "<main><h1>Blog</h1><ul><li><a href=\"/blog/article-a\">First article</a></li></ul>"
        '<p><a href="/blog?page=2">Next page</a> <a href="/pricing">Pricing</a></p></main>',
    ),
    "/blog?page=2": _html(
        "Blog about web design and development, page 2",
        "<main><h1>Blog, page 2</h1><ul><li><a href=\"/blog/article-b\">Second article</a></li></ul>"
        '<p><a href="/blog">Previous page</a></p></main>',
    ),
    "/blog/article-a": _html(
        "How we plan a website redesign project",
        "<main><article><h1>How we plan a redesign</h1>"
        f"<p>{SHARED_PARAGRAPH}</p>"
        '<p>Compare the plans on <a href="/pricing">see pricing</a>.</p>'
        '<p>Still unsure? <a href="/pricing">see pricing</a> again.</p>'
        '<p>Last reminder: <a href="/pricing">see pricing</a>.</p>'
        "</article></main>",
    ),
    "/blog/article-b": _html(
        "Choosing a content management system",
        "<main><article><h1>Choosing a CMS</h1>"
        f"<p>{SHARED_PARAGRAPH}</p>"
        '<p>Our <a href="/pricing">pricing</a> includes CMS setup.</p>'
        "</article></main>",
    ),
}

ROBOTS_TXT = f"User-agent: *\nDisallow: /private\nSitemap: {SITE}/sitemap.xml\n"

SITEMAP_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    f"<url><loc>{SITE}/</loc></url>"
    f"<url><loc>{SITE}/pricing</loc></url>"
    f"<url><loc>{SITE}/about</loc></url>"
    "</urlset>"
)


def site_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host != "example.test":
        return httpx.Response(200, html="<html><body>External</body></html>")

    path = request.url.path
    if path == "/robots.txt":
        return httpx.Response(200, text=ROBOTS_TXT)
    if path == "/sitemap.xml":
        return httpx.Response(200, content=SITEMAP_XML.encode(), headers={"content-type": "application/xml"})

    # Only the pagination parameter selects a different document
    page = request.url.params.get("page")
    key = f"{path}?page={page}" if page else path
    html = SITE_PAGES.get(key)
    if html is None:
        return httpx.Response(404, html="<html><body>Not found</body></html>")
    return httpx.Response(200, html=html)


@pytest.fixture
def site_transport() -> httpx.MockTransport:
    return httpx.MockTransport(site_handler)


@pytest.fixture
def site_inputs():
    return build_inputs(f"{SITE}/", AuditDefaults(), block_private_addresses=False)
