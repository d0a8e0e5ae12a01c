"""Configuration management for the research pipeline."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

IN_MEMORY_DB = ":memory:"


@dataclass
class Config:
    """Configuration for the research pipeline."""

    # LLM Configuration (any OpenAI-compatible endpoint, Ollama by default)
    api_key: str
    api_endpoint: str
    default_model: str
    planner_model: str
    search_summary_model: str
    report_model: str
    llm_temperature: float
    planner_temperature: float
    llm_max_retries: int  # Transport-level retries inside the SDK
    report_max_tokens: Optional[int]

    # Search Configuration
    searxng_base_url: str
    search_max_results: int  # Top N raw results kept per query
    search_timeout: float  # Seconds per SearxNG request
    search_max_attempts: int
    search_retry_delay: float  # Seconds between attempts of one query
    search_query_delay: float  # Seconds between consecutive queries

    # Embedding / Semantic Index Configuration
    embedding_url: str
    embedding_model: str
    embedding_api_key: Optional[str]
    embedding_dim: int
    embedding_parallel: int
    vector_db_path: str
    semantic_search_limit: int
    top_sources_limit: int

    # Persistence Configuration
    document_db_path: str
    document_collection: str
    output_dir: Path
    save_markdown: bool

    log_level: str

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        def get_required(key: str) -> str:
            value = os.getenv(key)
            if not value:
                raise ValueError(f"Required environment variable {key} is not set")
            return value

        def get_optional(key: str, default: str) -> str:
            return os.getenv(key, default)

        def get_flag(key: str, default: str) -> bool:
            return get_optional(key, default).lower() in ("true", "1", "yes")

        def get_positive_int(key: str, default: str, warn_above: Optional[int] = None) -> int:
            """Parse and validate a positive integer setting."""
            val_str = os.getenv(key, default)
            try:
                val = int(val_str)
            except (ValueError, TypeError) as e:
                raise ValueError(
                    f"Invalid value for {key}: '{val_str}'. Must be a positive integer. Error: {e}"
                )
            if val < 1:
                raise ValueError(f"{key} must be at least 1, got {val}")
            if warn_above is not None and val > warn_above:
                logger.warning(
                    f"{key} is set to {val}, which is very high. "
                    f"This may cause resource exhaustion or rate limiting."
                )
            return val

        def get_non_negative_float(key: str, default: str) -> float:
            val_str = os.getenv(key, default)
            try:
                val = float(val_str)
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {key}: '{val_str}'. Error: {e}")
            if val < 0:
                raise ValueError(f"{key} must not be negative, got {val}")
            return val

        api_endpoint = get_optional("API_ENDPOINT", "http://localhost:11434/v1")
        api_key = get_optional("API_KEY", "ollama")
        default_model = get_optional("DEFAULT_MODEL", "llama3.1")
        report_max_tokens = os.getenv("REPORT_MAX_TOKENS")

        return cls(
            api_key=api_key,
            api_endpoint=api_endpoint,
            default_model=default_model,
            planner_model=get_optional("PLANNER_MODEL", default_model),
            search_summary_model=get_optional("SEARCH_SUMMARY_MODEL", default_model),
            report_model=get_optional("REPORT_MODEL", default_model),
            llm_temperature=get_non_negative_float("LLM_TEMPERATURE", "0.7"),
            planner_temperature=get_non_negative_float("PLANNER_TEMPERATURE", "0.3"),
            llm_max_retries=int(get_optional("LLM_MAX_RETRIES", "3")),
            report_max_tokens=int(report_max_tokens) if report_max_tokens else None,

            searxng_base_url=get_required("SEARXNG_BASE_URL"),
            search_max_results=get_positive_int("SEARCH_MAX_RESULTS", "5", warn_above=20),
            search_timeout=get_non_negative_float("SEARCH_TIMEOUT", "10"),
            search_max_attempts=get_positive_int("SEARCH_MAX_ATTEMPTS", "3"),
            search_retry_delay=get_non_negative_float("SEARCH_RETRY_DELAY", "3.0"),
            search_query_delay=get_non_negative_float("SEARCH_QUERY_DELAY", "2.0"),

            embedding_url=get_optional("EMBEDDING_URL", api_endpoint),
            embedding_model=get_optional("EMBEDDING_MODEL", "embeddinggemma"),
            embedding_api_key=os.getenv("EMBEDDING_API_KEY", api_key),
            embedding_dim=get_positive_int("EMBEDDING_DIM", "768"),
            embedding_parallel=get_positive_int("EMBEDDING_PARALLEL", "4", warn_above=32),
            vector_db_path=get_optional("VECTOR_DB_PATH", IN_MEMORY_DB),
            semantic_search_limit=get_positive_int("SEMANTIC_SEARCH_LIMIT", "20"),
            top_sources_limit=get_positive_int("TOP_SOURCES_LIMIT", "15"),

            document_db_path=get_optional("DOCUMENT_DB_PATH", "./research_documents.sqlite"),
            document_collection=get_optional("DOCUMENT_COLLECTION", "research"),
            output_dir=Path(get_optional("OUTPUT_DIR", "./reports")),
            save_markdown=get_flag("SAVE_MARKDOWN", "true"),

            log_level=get_optional("LOG_LEVEL", "INFO"),
        )

    def ensure_directories(self):
        """Create necessary directories."""
        if self.save_markdown:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        for db_path in (self.vector_db_path, self.document_db_path):
            if db_path != IN_MEMORY_DB:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
