"""Exception hierarchy for the research pipeline."""

from typing import Optional


class ResearchError(Exception):
    """Base class for pipeline failures.

    ``stage`` is filled in by the pipeline with the name of the stage that
    was running when the error surfaced.
    """

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class GenerationError(ResearchError):
    """The language model did not produce valid structured output."""

    def __init__(self, message: str, response_text: str = "", stage: Optional[str] = None):
        super().__init__(message, stage=stage)
        self.response_text = response_text


class NoJsonObjectError(GenerationError):
    """No balanced JSON object could be located in the model reply."""


class SchemaMismatchError(GenerationError):
    """A JSON object was found but does not match the expected schema."""


class SemanticIndexError(ResearchError):
    """Embedding or similarity search failed."""


class PersistenceError(ResearchError):
    """Saving the finished research failed.

    ``report`` holds the fully computed report so callers may still use it.
    """

    def __init__(self, message: str, report=None, stage: Optional[str] = None):
        super().__init__(message, stage=stage)
        self.report = report


class StageError(ResearchError):
    """Wraps an unexpected exception raised inside a pipeline stage."""
