"""Research pipeline orchestrator."""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import Config
from .errors import PersistenceError, ResearchError, StageError
from .llm_client import LLMClient
from .models import IndexedContentItem, ResearchReport, ResearchState
from .stages import (
    EmbeddingClient,
    QueryPlanner,
    QuerySearcher,
    ReportSynthesizer,
    ResultAggregator,
    SearchExecutor,
    SearxNGClient,
    SemanticIndex,
    namespace_for_topic,
)
from .storage import DocumentStore, write_markdown_report

logger = logging.getLogger(__name__)

Stage = Callable[[ResearchState], Dict[str, Any]]


class ResearchPipeline:
    """
    Main research pipeline orchestrator.

    Runs a fixed, linear list of stages. Each stage receives the accumulated
    ``ResearchState`` and returns the fields it produced, which are merged into
    a new state before the next stage runs.
    """

    def __init__(
        self,
        config: Config,
        llm_client: Optional[LLMClient] = None,
        planner: Optional[QueryPlanner] = None,
        executor: Optional[SearchExecutor] = None,
        index: Optional[SemanticIndex] = None,
        aggregator: Optional[ResultAggregator] = None,
        synthesizer: Optional[ReportSynthesizer] = None,
        document_store: Optional[DocumentStore] = None,
    ):
        """Initialize the research pipeline, building any component not supplied."""
        self.config = config
        self.config.ensure_directories()

        self.llm_client = llm_client or LLMClient(
            api_key=config.api_key,
            api_endpoint=config.api_endpoint,
            default_model=config.default_model,
            max_retries=config.llm_max_retries,
        )

        self.planner = planner or QueryPlanner(
            llm_client=self.llm_client,
            model=config.planner_model,
            temperature=config.planner_temperature,
        )

        if executor is None:
            search_client = SearxNGClient(
                base_url=config.searxng_base_url,
                max_results=config.search_max_results,
                timeout=config.search_timeout,
                max_attempts=config.search_max_attempts,
                retry_delay=config.search_retry_delay,
            )
            searcher = QuerySearcher(
                search_client=search_client,
                llm_client=self.llm_client,
                model=config.search_summary_model,
                temperature=config.llm_temperature,
            )
            executor = SearchExecutor(searcher, query_delay=config.search_query_delay)
        self.executor = executor

        if index is None:
            embedding_client = EmbeddingClient(
                api_url=config.embedding_url,
                api_key=config.embedding_api_key,
                model=config.embedding_model,
            )
            index = SemanticIndex(
                embedding_client=embedding_client,
                db_path=config.vector_db_path,
                dimension=config.embedding_dim,
                max_workers=config.embedding_parallel,
            )
        self.index = index

        self.aggregator = aggregator or ResultAggregator(top_sources_limit=config.top_sources_limit)

        self.synthesizer = synthesizer or ReportSynthesizer(
            llm_client=self.llm_client,
            model=config.report_model,
            temperature=config.llm_temperature,
            max_tokens=config.report_max_tokens,
        )

        self.document_store = document_store or DocumentStore(config.document_db_path)

        self.stages: List[Tuple[str, Stage]] = [
            ("generate_queries", self._generate_queries),
            ("search", self._search),
            ("filter", self._filter),
            ("summarize", self._summarize),
            ("save", self._save),
        ]

        logger.info("Research pipeline initialized")

    def run(self, topic: str) -> ResearchReport:
        """Run every stage for ``topic`` and return the finished report."""
        if not topic or not topic.strip():
            raise ValueError("Research topic must not be empty")
        topic = topic.strip()

        logger.info(f"Starting research pipeline for topic: {topic[:100]}...")
        state = ResearchState(topic=topic)

        for number, (name, stage) in enumerate(self.stages, 1):
            logger.info(f"Stage {number}: {name.replace('_', ' ')}...")
            try:
                updates = stage(state)
            except ResearchError as e:
                e.stage = name
                logger.error(f"Stage '{name}' failed: {e}")
                raise
            except Exception as e:
                logger.error(f"Stage '{name}' failed: {e}", exc_info=True)
                raise StageError(f"Stage '{name}' failed: {e}", stage=name) from e
            state = replace(state, **updates)

        logger.info(f"Research complete for topic: {topic[:100]}")
        return state.to_report()

    def _generate_queries(self, state: ResearchState) -> Dict[str, Any]:
        queries = self.planner.plan(state.topic)
        logger.info(f"Generated {len(queries)} search queries")
        return {"queries": tuple(queries)}

    def _search(self, state: ResearchState) -> Dict[str, Any]:
        results = self.executor.run(list(state.queries))
        total = sum(len(r.results) for r in results)
        logger.info(f"Found {total} search results across {len(results)} queries")
        return {"search_results": tuple(results)}

    def _filter(self, state: ResearchState) -> Dict[str, Any]:
        namespace = namespace_for_topic(state.topic)
        items: List[IndexedContentItem] = []
        for result in state.search_results:
            items.extend(IndexedContentItem.from_search_result(result))

        succeeded = False
        try:
            self.index.add_batch(namespace, items)
            matches = self.index.search(namespace, state.topic, limit=self.config.semantic_search_limit)
            logger.info(f"Semantic search kept {len(matches)}/{len(items)} results")
            groups = self.aggregator.aggregate(state.topic, state.search_results, matches)
            succeeded = True
        finally:
            try:
                self.index.clear_namespace(namespace)
            except Exception as e:
                if succeeded:
                    raise
                # Keep the filtering error as the one that propagates
                logger.error(f"Failed to clear namespace {namespace} after filter error: {e}")

        return {"filtered_results": tuple(groups)}

    def _summarize(self, state: ResearchState) -> Dict[str, Any]:
        summary = self.synthesizer.synthesize(state.topic, state.filtered_results)
        sources = self.aggregator.collect_sources(state.filtered_results, limit=self.config.top_sources_limit)
        logger.info(f"Report synthesized with {len(sources)} top sources")
        return {"summary": summary, "sources": tuple(sources)}

    def _save(self, state: ResearchState) -> Dict[str, Any]:
        document = {
            "query": state.topic,
            "summary": state.summary,
            "sources": [source.url for source in state.sources],
            "timestamp": state.timestamp.isoformat(),
        }

        try:
            document_id = self.document_store.insert(self.config.document_collection, document)
        except PersistenceError as e:
            e.report = state.to_report()
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save research: {e}", report=state.to_report()) from e

        report_path = None
        if self.config.save_markdown:
            report = replace(state, document_id=document_id).to_report()
            try:
                report_path = write_markdown_report(report, self.config.output_dir)
            except PersistenceError as e:
                e.report = report
                raise
            logger.info(f"Report saved to: {report_path}")

        return {"document_id": document_id, "report_path": report_path}

    def close(self):
        """Release the semantic index and the document store."""
        self.index.close()
        self.document_store.close()
