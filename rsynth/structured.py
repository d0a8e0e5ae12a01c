"""Helpers for requesting and parsing structured JSON output from an LLM.

Model replies often wrap the JSON object in reasoning text or code fences, so
parsing happens in two phases: locate a balanced ``{...}`` object inside the
raw text, then validate the decoded value against a pydantic schema. Each phase
fails with its own exception type.
"""

import json
import logging
from typing import Any, Dict, Iterator, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import GenerationError, NoJsonObjectError, SchemaMismatchError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _balanced_objects(text: str) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` spans of top-level balanced ``{...}`` substrings.

    Braces inside JSON string literals are ignored. An opening brace that is
    never closed is skipped and scanning resumes right after it.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i + 1
                    break
        if end == -1:
            start = text.find("{", start + 1)
            continue
        yield start, end
        start = text.find("{", end)


def extract_json_object(response_text: str) -> Dict[str, Any]:
    """Extract the first decodable JSON object from free-form model output.

    Raises:
        NoJsonObjectError: no balanced ``{...}`` substring exists.
        GenerationError: balanced substrings exist but none decodes to an object.
    """
    text = (response_text or "").strip()
    first_error: Optional[Exception] = None

    for start, end in _balanced_objects(text):
        candidate = text[start:end]
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug(f"Candidate JSON at {start}:{end} failed to parse: {e}")
            if first_error is None:
                first_error = e
            continue
        if isinstance(parsed, dict):
            return parsed

    if first_error is not None:
        raise GenerationError(
            f"Failed to parse JSON from LLM response: {first_error}",
            response_text=response_text,
        )
    raise NoJsonObjectError(
        "No valid JSON object found in LLM response. "
        "Response must contain a JSON object enclosed in curly braces.",
        response_text=response_text,
    )


def validate_schema(data: Dict[str, Any], schema: Type[SchemaT], response_text: str = "") -> SchemaT:
    """Validate decoded JSON against ``schema``."""
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise SchemaMismatchError(
            f"Failed to validate LLM response against schema: {e}",
            response_text=response_text,
        ) from e


def parse_structured(response_text: str, schema: Type[SchemaT]) -> SchemaT:
    """Extract and validate a structured reply in one call."""
    data = extract_json_object(response_text)
    return validate_schema(data, schema, response_text=response_text)


def build_json_prompt(task: str, schema: Type[BaseModel], additional_instructions: str = "") -> str:
    """Append JSON-schema output instructions to a task description."""
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    prompt = f"""{task}

You MUST respond with valid JSON in this exact format:
{schema_json}

{additional_instructions}

IMPORTANT: Respond with ONLY the JSON object, no additional text or explanation before or after."""
    return prompt.strip()
