"""Repeated content-block detection across crawled pages.

Template paragraphs (intro boilerplate, shared service descriptions,
copy-pasted disclaimers) often survive main-text extraction and appear
verbatim on many pages.  This module groups those blocks so the rule
engine can report the largest groups.
"""

import re
from typing import Dict, List, NamedTuple, Set

from app.models.page import PageExtract
from app.services.text import normalize_for_compare

# Minimum characters a block must have to be considered.
# Short lines (e.g. a single CTA) are too common to be reliable signals.
MIN_BLOCK_LEN = 80

# Largest groups reported per run
MAX_GROUPS = 8

_CHUNK_SPLIT_RE = re.compile(r"\n{2,}|(?<=[.?!])\s+")


class BlockGroup(NamedTuple):
    chunk: str
    urls: List[str]


def extract_text_chunks(main_text: str) -> List[str]:
    """Split *main_text* on blank lines and sentence ends; keep long normalised chunks."""
    chunks: List[str] = []
    for block in _CHUNK_SPLIT_RE.split(main_text or ""):
        normalized = normalize_for_compare(block)
        if len(normalized) >= MIN_BLOCK_LEN:
            chunks.append(normalized)
    return chunks


def find_repeated_blocks(pages: List[PageExtract], max_groups: int = MAX_GROUPS) -> List[BlockGroup]:
    """Return up to *max_groups* chunks shared by at least two pages.

    Groups are ordered by page count descending, then chunk text.
    """
    chunk_to_urls: Dict[str, Set[str]] = {}
    for page in pages:
        for chunk in extract_text_chunks(page.main_text):
            chunk_to_urls.setdefault(chunk, set()).add(page.url)

    groups = [
        BlockGroup(chunk=chunk, urls=sorted(urls))
        for chunk, urls in chunk_to_urls.items()
        if len(urls) >= 2
    ]
    groups.sort(key=lambda group: (-len(group.urls), group.chunk))
    return groups[:max_groups]
