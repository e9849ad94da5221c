"""Main-text pre-pass: strip everything a reader would not see as page copy.

Only the main-text extraction goes through here.  Head fields, links,
images and structured data are read from the untouched document because
the SEO rules need nav links and footer markup too.
"""

import re
from typing import Iterator

from bs4 import BeautifulSoup, Comment, Tag

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg", "canvas", "iframe", "object", "embed")
_CHROME_TAGS = ("nav", "header", "footer", "aside", "form", "dialog")

_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)

# id/class tokens of repeated site chrome; boilerplate left in would skew
# word counts and duplicate-block detection
_CHROME_TOKENS = frozenset(
    {
        "nav",
        "navbar",
        "navigation",
        "menu",
        "footer",
        "sidebar",
        "cookie",
        "cookies",
        "consent",
        "gdpr",
        "popup",
        "modal",
        "breadcrumb",
        "breadcrumbs",
        "share",
        "social",
    }
)

_CONTENT_ROOTS = ("html", "body", "main", "article")

_TOKEN_SPLIT_RE = re.compile(r"[\s_\-]+")


def _attr_tokens(tag: Tag) -> Iterator[str]:
    values = list(tag.get("class") or [])
    if tag.get("id"):
        values.append(str(tag["id"]))
    for value in values:
        for token in _TOKEN_SPLIT_RE.split(str(value).lower()):
            if token:
                yield token


def _is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden") or str(tag.get("aria-hidden", "")).lower() == "true":
        return True
    return bool(_HIDDEN_STYLE_RE.search(str(tag.get("style") or "")))


def _is_chrome(tag: Tag) -> bool:
    return any(token in _CHROME_TOKENS for token in _attr_tokens(tag))


def sanitize(html: str) -> BeautifulSoup:
    """Parse *html* and drop invisible nodes, comments and page chrome.

    ``main``/``article`` containers are never dropped on class or id alone,
    since themes often hang layout classes such as ``nav-offset`` on them.
    """
    soup = BeautifulSoup(html, "lxml")

    for tag in soup.find_all(_INVISIBLE_TAGS + _CHROME_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        if tag.decomposed or tag.name in _CONTENT_ROOTS:
            continue
        if _is_hidden(tag) or _is_chrome(tag):
            tag.decompose()

    return soup
