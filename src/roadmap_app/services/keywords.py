"""Keyword extraction and prompt fingerprinting.

Pure functions: no database or app context required.
"""
from __future__ import annotations

import re
from typing import Iterable, List

from ..constants import MAX_KEYWORDS, MIN_KEYWORD_LENGTH

STOPWORDS = frozenset({
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from',
    'has', 'he', 'in', 'is', 'it', 'its', 'of', 'on', 'that', 'the',
    'to', 'was', 'will', 'with', 'how', 'what', 'when', 'where', 'who',
    'learn', 'guide', 'tutorial', 'roadmap', 'i', 'want', 'need', 'can',
    'should', 'would', 'like', 'make', 'create', 'build',
})

_NON_WORD = re.compile(r'[^\w\s-]', re.UNICODE)
_WHITESPACE = re.compile(r'\s+')


def extract_keywords(text: str | None, limit: int = MAX_KEYWORDS) -> List[str]:
    """Return up to `limit` distinct lowercase keywords in first-occurrence order.

    Punctuation other than hyphens is stripped, words of length <= 2 and
    stopwords are dropped.
    """
    if not text:
        return []
    cleaned = _NON_WORD.sub(' ', text.lower())
    keywords: List[str] = []
    seen = set()
    for word in _WHITESPACE.split(cleaned):
        if len(word) < MIN_KEYWORD_LENGTH or word in STOPWORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords


def normalize_prompt(text: str | None) -> str:
    """Lowercase and collapse whitespace."""
    return _WHITESPACE.sub(' ', (text or '').strip().lower())


def fingerprint(text: str | None) -> str:
    """Stable dedup key for a prompt.

    Sorted distinct keywords joined by a space, so "React hooks guide" and
    "hooks react" share a key. Prompts with no surviving keywords fall back
    to their normalized text.
    """
    keywords = extract_keywords(text)
    if keywords:
        return ' '.join(sorted(keywords))
    return normalize_prompt(text)


def merge_keywords(*groups: Iterable[str], limit: int | None = None) -> List[str]:
    """Union of keyword groups, lowercased, first occurrence wins."""
    merged: List[str] = []
    seen = set()
    for group in groups:
        for keyword in group or ():
            value = str(keyword).strip().lower()
            if not value or value in seen:
                continue
            seen.add(value)
            merged.append(value)
    return merged[:limit] if limit else merged
