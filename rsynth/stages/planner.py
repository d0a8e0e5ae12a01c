"""Query planning stage."""

import logging
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import GenerationError
from ..llm_client import LLMClient
from ..structured import build_json_prompt, parse_structured

logger = logging.getLogger(__name__)

MIN_QUERIES = 3
MAX_QUERIES = 5


class QueriesSchema(BaseModel):
    """Structured reply expected from the planner model."""

    model_config = ConfigDict(extra="ignore")

    queries: List[str] = Field(
        min_length=MIN_QUERIES,
        max_length=MAX_QUERIES,
        description="Array of 3-5 specific search queries",
    )

    @field_validator("queries")
    @classmethod
    def _strip_queries(cls, queries: List[str]) -> List[str]:
        stripped = [q.strip() for q in queries]
        if any(not q for q in stripped):
            raise ValueError("search queries must be non-empty strings")
        return stripped


class QueryPlanner:
    """Turns a research topic into a handful of diverse search queries."""

    def __init__(self, llm_client: LLMClient, model: str, temperature: float = 0.3):
        """Initialize the planner."""
        self.llm_client = llm_client
        self.model = model
        self.temperature = temperature

    def build_prompt(self, topic: str) -> str:
        task = f"""You are a research assistant. Generate 3-5 diverse search queries about the following topic.

Topic: {topic}

The queries should:
- Cover different aspects of the topic
- Be specific and actionable
- Return complementary information"""
        return build_json_prompt(task, QueriesSchema)

    def plan(self, topic: str) -> List[str]:
        """Generate search queries for ``topic``.

        Raises:
            GenerationError: the reply holds no valid JSON object or does not
                match the schema. Not retried here.
        """
        logger.info(f"Planning queries for topic: {topic[:100]}...")

        response = self.llm_client.complete(
            prompt=self.build_prompt(topic),
            model=self.model,
            temperature=self.temperature,
        )

        try:
            parsed = parse_structured(response.strip(), QueriesSchema)
        except GenerationError as e:
            logger.error(f"Failed to parse planner response: {e}")
            logger.debug(f"Raw planner response (first 500 chars): {response[:500]}")
            raise

        for i, query in enumerate(parsed.queries, 1):
            logger.info(f"  {i}. {query}")
        return list(parsed.queries)
