"""Search stage - resolves queries into raw results through SearxNG, one at a time."""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from ..llm_client import LLMClient
from ..models import RawResultItem, SearchResult

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description available"


class SearxNGClient:
    """
    Client for the SearxNG JSON search API.

    Failures are soft: an empty result set or a request error is retried after
    a fixed delay, and once every attempt is used up an empty list is returned
    instead of raising, so one bad query cannot abort a whole research run.
    """

    def __init__(
        self,
        base_url: str,
        max_results: int = 5,
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_delay: float = 3.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the SearxNG client.

        Args:
            base_url: Base URL of the SearxNG instance
            max_results: Number of top results kept per query
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per query before giving up
            retry_delay: Seconds to wait between attempts
            session: Optional requests session (mainly for connection reuse)
        """
        self.base_url = base_url.rstrip('/')
        self.max_results = max_results
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        logger.info(f"SearxNG client initialized: {self.base_url} (top {max_results}, {max_attempts} attempts)")

    def search(self, query: str) -> List[RawResultItem]:
        """
        Search SearxNG, retrying on empty results or errors.

        Args:
            query: Search query string

        Returns:
            Up to ``max_results`` results; empty list once attempts are exhausted
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                results = self._execute_search(query)
            except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
                if attempt < self.max_attempts:
                    logger.warning(
                        f"Error searching SearxNG (attempt {attempt}/{self.max_attempts}): {e}. "
                        f"Retrying in {self.retry_delay:g}s..."
                    )
                    time.sleep(self.retry_delay)
                    continue
                logger.error(f"Failed to search SearxNG after {self.max_attempts} attempts: {e}")
                return []

            if results:
                return results

            if attempt < self.max_attempts:
                logger.warning(
                    f"No results for \"{query}\" (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {self.retry_delay:g}s..."
                )
                time.sleep(self.retry_delay)
                continue
            logger.warning(f"No results found for \"{query}\" after {self.max_attempts} attempts")

        return []

    def _execute_search(self, query: str) -> List[RawResultItem]:
        """Perform a single request. Raises on HTTP or decoding errors."""
        params = {
            "q": query,
            "format": "json",
            "language": "en",
        }
        logger.debug(f"Calling SearxNG: query={query}")
        response = self.session.get(f"{self.base_url}/search", params=params, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        return self._parse_response(data)

    def _parse_response(self, data: Dict[str, Any]) -> List[RawResultItem]:
        """Parse a SearxNG JSON payload into RawResultItem objects.

        Raises ValueError when the payload or its ``results`` field has the
        wrong shape. Individual malformed entries are skipped.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected SearxNG payload type: {type(data).__name__}")
        items = data.get("results")
        if items is None:
            items = []
        if not isinstance(items, list):
            raise ValueError(f"Unexpected SearxNG results type: {type(items).__name__}")

        results = []
        for i, item in enumerate(items):
            if len(results) >= self.max_results:
                break
            if not isinstance(item, dict):
                logger.warning(f"Skipping SearxNG result {i}: expected an object, got {type(item).__name__}")
                continue
            try:
                results.append(RawResultItem(
                    title=str(item.get("title") or ""),
                    url=str(item.get("url") or ""),
                    snippet=str(item.get("content") or NO_DESCRIPTION),
                ))
            except Exception as e:
                logger.warning(f"Error parsing SearxNG result {i}: {e}")
                continue
        return results


class QuerySearcher:
    """Fetches raw results for one query and summarizes them with the LLM."""

    def __init__(self, search_client: SearxNGClient, llm_client: LLMClient, model: str, temperature: float = 0.7):
        self.search_client = search_client
        self.llm_client = llm_client
        self.model = model
        self.temperature = temperature

    def search(self, query: str) -> SearchResult:
        logger.info(f"Searching: \"{query}\"")
        results = self.search_client.search(query)

        if not results:
            return SearchResult(query=query, results=(), summary=f"No results found for query: \"{query}\"")

        prompt = f"""Based on the following search results for "{query}", provide a clear and concise answer:

{self.format_results(results)}

Please synthesize the information and provide a helpful response."""

        summary = self.llm_client.complete(prompt=prompt, model=self.model, temperature=self.temperature)
        return SearchResult(query=query, results=tuple(results), summary=summary)

    @staticmethod
    def format_results(results: List[RawResultItem]) -> str:
        return "\n\n".join(
            f"{i}. {r.title}\n   URL: {r.url}\n   Snippet: {r.snippet}"
            for i, r in enumerate(results, 1)
        )


class SearchCache:
    """
    In-memory cache of search results keyed by the exact query string.

    Entries never expire; the cache lives as long as its owner and is emptied
    only through ``clear``.
    """

    def __init__(self):
        self._entries: Dict[str, SearchResult] = {}
        self._lock = threading.Lock()

    def get(self, query: str) -> Optional[SearchResult]:
        with self._lock:
            return self._entries.get(query)

    def set(self, query: str, result: SearchResult) -> None:
        with self._lock:
            self._entries[query] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, query: str) -> bool:
        with self._lock:
            return query in self._entries


class SearchExecutor:
    """
    Resolves queries sequentially, with caching and a fixed delay between
    queries to stay under the search engine's rate limit.

    One executor is meant to serve one run at a time; running it from several
    threads at once can issue duplicate searches for the same query.
    """

    def __init__(self, searcher: QuerySearcher, cache: Optional[SearchCache] = None, query_delay: float = 2.0):
        self.searcher = searcher
        self.cache = cache if cache is not None else SearchCache()
        self.query_delay = query_delay

    def run(self, queries: List[str]) -> List[SearchResult]:
        """Resolve every query in order."""
        logger.info(f"Executing {len(queries)} searches sequentially")
        results: List[SearchResult] = []

        for i, query in enumerate(queries):
            cached = self.cache.get(query)
            if cached is not None:
                logger.info(f"Using cached results for: \"{query}\"")
                result = cached
            else:
                result = self.searcher.search(query)
                self.cache.set(query, result)
            logger.info(f"Query {i + 1}/{len(queries)}: {len(result.results)} results")
            results.append(result)

            if i < len(queries) - 1:
                logger.debug(f"Waiting {self.query_delay:g}s to avoid rate limiting...")
                time.sleep(self.query_delay)

        return results

    def clear_cache(self) -> None:
        self.cache.clear()
