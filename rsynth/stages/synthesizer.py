"""Report synthesis stage."""

import logging
from typing import Optional, Sequence

from ..llm_client import LLMClient
from ..models import AggregatedGroup

logger = logging.getLogger(__name__)


class ReportSynthesizer:
    """Turns aggregated findings into a prose report."""

    def __init__(self, llm_client: LLMClient, model: str, temperature: float = 0.7, max_tokens: Optional[int] = None):
        self.llm_client = llm_client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_prompt(self, topic: str, groups: Sequence[AggregatedGroup]) -> str:
        findings = "\n\n---\n\n".join(
            f"Query: {group.query}\nFindings: {group.summary}\n\nSources:\n"
            + "\n".join(f"- {item.title} ({item.url})" for item in group.results)
            for group in groups
        )

        return f"""You are a research analyst. Based on the following research findings about "{topic}", create a comprehensive, well-organized report.

{findings}

Provide:
1. An executive summary
2. Key findings organized by theme
3. Important insights and patterns
4. Conclusions

Make it clear, concise, and actionable."""

    def synthesize(self, topic: str, groups: Sequence[AggregatedGroup]) -> str:
        logger.info(f"Synthesizing report from {len(groups)} query groups")
        if not groups:
            logger.warning("No semantically relevant findings; the report will have little to draw on")
        return self.llm_client.complete(
            prompt=self.build_prompt(topic, groups),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
