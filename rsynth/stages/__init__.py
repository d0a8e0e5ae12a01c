"""Pipeline stages."""

from .planner import QueryPlanner
from .searcher import QuerySearcher, SearchCache, SearchExecutor, SearxNGClient
from .semantic_index import EmbeddingClient, SemanticIndex, namespace_for_topic
from .aggregator import ResultAggregator
from .synthesizer import ReportSynthesizer

__all__ = [
    "QueryPlanner",
    "QuerySearcher",
    "SearchCache",
    "SearchExecutor",
    "SearxNGClient",
    "EmbeddingClient",
    "SemanticIndex",
    "namespace_for_topic",
    "ResultAggregator",
    "ReportSynthesizer",
]
