"""Text normalisation and lexical similarity helpers."""

import re
import unicodedata
from collections import Counter
from typing import NamedTuple, Optional, Set

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]|_")


def normalize_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace; return *None* for empty input."""
    if not value:
        return None
    normalized = _WHITESPACE_RE.sub(" ", value).strip()
    return normalized or None


def normalize_for_compare(value: Optional[str]) -> str:
    """Lowercase, accent-fold and strip punctuation for exact comparisons."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", folded)).strip()


def tokenize(value: Optional[str], min_length: int = 2) -> Set[str]:
    normalized = normalize_for_compare(value)
    if not normalized:
        return set()
    return {token for token in normalized.split(" ") if len(token) >= min_length}


def jaccard_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Token-set Jaccard similarity; two empty inputs count as identical."""
    set_a = tokenize(a)
    set_b = tokenize(b)
    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0
    intersection = len(set_a & set_b)
    union = len(set_a | set_b)
    return intersection / union if union else 0.0


class KeywordRepeat(NamedTuple):
    top_token: str
    count: int
    ratio: float


def count_top_keyword_repeat(text: str) -> KeywordRepeat:
    """Most repeated token (≥3 chars) in *text*; ties go to the alphabetically first."""
    tokens = [token for token in normalize_for_compare(text).split(" ") if len(token) >= 3]
    if not tokens:
        return KeywordRepeat("", 0, 0.0)
    histogram = Counter(tokens)
    top_token, top_count = min(histogram.items(), key=lambda item: (-item[1], item[0]))
    return KeywordRepeat(top_token, top_count, top_count / len(tokens))
