"""Data models for the research pipeline."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _serialize(value: Any) -> Any:
    """Make ``asdict`` output JSON friendly."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class RawResultItem(_Serializable):
    """A single hit returned by the search engine."""
    title: str
    url: str
    snippet: str


@dataclass(frozen=True)
class SearchResult(_Serializable):
    """Raw results and LLM summary for one query."""
    query: str
    results: Tuple[RawResultItem, ...] = ()
    summary: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class IndexedContentItem(_Serializable):
    """Embeddable projection of a raw result."""
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_search_result(cls, result: SearchResult) -> List["IndexedContentItem"]:
        """Build one item per raw result, tagged with the originating query."""
        items = []
        for index, raw in enumerate(result.results):
            items.append(cls(
                id=f"{result.query}-{index}-{raw.url}",
                text=f"{raw.title}\n\n{raw.snippet}\n\nQuery: {result.query}",
                metadata={
                    "title": raw.title,
                    "url": raw.url,
                    "snippet": raw.snippet,
                    "query": result.query,
                    "summary": result.summary,
                },
            ))
        return items


@dataclass
class ScoredMatch(_Serializable):
    """A similarity search hit. ``value`` is the stored metadata plus ``text``."""
    key: str
    value: Dict[str, Any]
    score: Optional[float] = None


@dataclass
class AggregatedItem(_Serializable):
    title: str
    url: str
    snippet: str
    relevance_score: float


@dataclass
class AggregatedGroup(_Serializable):
    """A search result reduced to its semantically retained items."""
    query: str
    results: List[AggregatedItem] = field(default_factory=list)
    summary: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class Source(_Serializable):
    url: str
    title: str
    relevance: float


@dataclass
class ResearchReport(_Serializable):
    """Final artifact of a pipeline run."""
    topic: str
    queries: List[str]
    summary: str
    top_sources: List[Source] = field(default_factory=list)
    all_results: List[AggregatedGroup] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)
    document_id: Optional[str] = None
    report_path: Optional[Path] = None


@dataclass(frozen=True)
class ResearchState:
    """State accumulated across pipeline stages."""
    topic: str
    queries: Tuple[str, ...] = ()
    search_results: Tuple[SearchResult, ...] = ()
    filtered_results: Tuple[AggregatedGroup, ...] = ()
    summary: str = ""
    sources: Tuple[Source, ...] = ()
    document_id: Optional[str] = None
    report_path: Optional[Path] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_report(self) -> ResearchReport:
        return ResearchReport(
            topic=self.topic,
            queries=list(self.queries),
            summary=self.summary,
            top_sources=list(self.sources),
            all_results=list(self.filtered_results),
            timestamp=self.timestamp,
            document_id=self.document_id,
            report_path=self.report_path,
        )
