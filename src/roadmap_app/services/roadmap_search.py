"""Roadmap cache lookup: exact title match and lexical similarity ranking."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..constants import DEFAULT_SEARCH_THRESHOLD, DEGRADED_QUALITY_FACTOR, TITLE_BOOST
from ..models import Roadmap
from ..utils.logging_config import get_logger
from .keywords import extract_keywords
from .store import RoadmapStore

logger = get_logger("search")


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    a, b = set(left), set(right)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def candidate_keywords(roadmap: Any) -> set:
    """Searchable surface: title keywords, stored search keywords and tags."""
    surface = set(extract_keywords(roadmap.title))
    surface.update(kw.lower() for kw in roadmap.get_search_keywords())
    surface.update(tag.lower() for tag in roadmap.get_tags())
    return surface


def calculate_similarity(prompt_or_keywords: Any, roadmap: Any) -> float:
    """Score in [0, 1]: ``min(1, (jaccard + title_boost) * quality_factor)``."""
    if isinstance(prompt_or_keywords, str):
        query = set(extract_keywords(prompt_or_keywords))
    else:
        query = set(prompt_or_keywords)
    surface = candidate_keywords(roadmap)
    if not query or not surface:
        return 0.0

    title = (roadmap.title or '').lower()
    boost = TITLE_BOOST if any(keyword in title for keyword in query) else 0.0
    factor = DEGRADED_QUALITY_FACTOR if roadmap.needs_regeneration else 1.0
    return min((jaccard(query, surface) + boost) * factor, 1.0)


@dataclass
class SearchResult:
    roadmap: Roadmap
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {'roadmap': self.roadmap.to_dict(), 'similarity': round(self.similarity, 4)}


class RoadmapSearchService:
    """Exact and fuzzy lookup over the roadmap store."""

    def __init__(self, store: RoadmapStore):
        self.store = store

    def find_exact(self, title: str) -> Optional[Roadmap]:
        return self.store.find_by_title(title)

    def find_similar(self, prompt: str, threshold: float = DEFAULT_SEARCH_THRESHOLD) -> List[SearchResult]:
        """Candidates at or above `threshold`, best first (stable for ties)."""
        keywords = extract_keywords(prompt)
        if not keywords:
            return []
        results = []
        for roadmap in self.store.find_candidates(keywords):
            score = calculate_similarity(keywords, roadmap)
            if score >= threshold:
                results.append(SearchResult(roadmap=roadmap, similarity=score))
        results.sort(key=lambda result: result.similarity, reverse=True)
        logger.debug(f"Similarity search for {keywords}: {len(results)} result(s) >= {threshold}")
        return results

    def get_popular(self, limit: int = 20) -> List[Roadmap]:
        return self.store.find(
            Roadmap,
            Roadmap.is_pre_generated.is_(True),
            Roadmap.is_published.is_(True),
            order_by=(Roadmap.views.desc(), Roadmap.completions.desc(), Roadmap.id),
            limit=limit,
        )
