"""Aggregation stage - regroups semantic matches by query and ranks sources."""

import logging
from typing import Dict, List, Optional, Sequence

from ..models import AggregatedGroup, AggregatedItem, ScoredMatch, SearchResult, Source

logger = logging.getLogger(__name__)

MAX_RELEVANCE = 10.0
DEFAULT_RELEVANCE = 5.0
DEFAULT_TOP_SOURCES = 15


def normalize_score(score: Optional[float]) -> float:
    """
    Map a raw similarity score onto the 0-10 relevance scale.

    Scores are assumed to lie roughly in [0, 1]; the linear rescale is clamped
    at both ends. A missing score gets the neutral default of 5.
    """
    if score is None:
        return DEFAULT_RELEVANCE
    return max(0.0, min(MAX_RELEVANCE, score * 10))


class ResultAggregator:
    """Turns semantic search matches back into per-query groups and a ranked source list."""

    def __init__(self, top_sources_limit: int = DEFAULT_TOP_SOURCES):
        self.top_sources_limit = top_sources_limit

    def aggregate(
        self,
        topic: str,
        original_results: Sequence[SearchResult],
        matches: Sequence[ScoredMatch],
    ) -> List[AggregatedGroup]:
        """
        Group matches by originating query.

        Groups follow the order in which their query first appears among the
        matches. Each group carries the summary and timestamp of the original
        search result; queries without any match produce no group, and matches
        whose query is unknown are dropped.
        """
        originals: Dict[str, SearchResult] = {}
        for result in original_results:
            originals.setdefault(result.query, result)

        groups: Dict[str, AggregatedGroup] = {}
        for match in matches:
            query = match.value.get("query")
            group = groups.get(query)
            if group is None:
                original = originals.get(query)
                if original is None:
                    logger.warning(f"Dropping match {match.key!r}: unknown query {query!r}")
                    continue
                group = AggregatedGroup(
                    query=original.query,
                    results=[],
                    summary=original.summary,
                    timestamp=original.timestamp,
                )
                groups[query] = group

            group.results.append(AggregatedItem(
                title=match.value.get("title", ""),
                url=match.value.get("url", ""),
                snippet=match.value.get("snippet", ""),
                relevance_score=normalize_score(match.score),
            ))

        aggregated = list(groups.values())
        logger.info(
            f"Kept {len(aggregated)}/{len(original_results)} query groups with relevant results "
            f"for topic: {topic[:100]}"
        )
        return aggregated

    def collect_sources(self, groups: Sequence[AggregatedGroup], limit: Optional[int] = None) -> List[Source]:
        """
        Deduplicate sources by URL and rank them.

        The first occurrence of a URL wins; later duplicates are discarded even
        when they score higher. The sort is stable, so equal relevance keeps
        discovery order.
        """
        limit = self.top_sources_limit if limit is None else limit
        by_url: Dict[str, Source] = {}
        for group in groups:
            for item in group.results:
                if item.url not in by_url:
                    by_url[item.url] = Source(url=item.url, title=item.title, relevance=item.relevance_score)

        ranked = sorted(by_url.values(), key=lambda s: s.relevance, reverse=True)
        return ranked[:limit]
