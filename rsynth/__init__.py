"""Topic research: plan queries, search, filter semantically and synthesize a report."""

from .config import Config
from .errors import (
    GenerationError,
    NoJsonObjectError,
    PersistenceError,
    ResearchError,
    SchemaMismatchError,
    SemanticIndexError,
    StageError,
)
from .models import ResearchReport
from .pipeline import ResearchPipeline

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ResearchPipeline",
    "ResearchReport",
    "ResearchError",
    "GenerationError",
    "NoJsonObjectError",
    "SchemaMismatchError",
    "SemanticIndexError",
    "PersistenceError",
    "StageError",
]
