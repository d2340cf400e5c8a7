from typing import Optional, Type, TypeVar
import logging
import json
import re

from pydantic import BaseModel, ValidationError

from prepgen.core.exceptions import ExtractionParseError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

APOLOGY_PREFIXES = (
    "i apologize",
    "i apologise",
    "i'm sorry",
    "i am sorry",
    "sorry,",
    "i cannot",
    "i can't",
    "i'm unable",
    "i am unable",
    "unfortunately, i",
    "as an ai",
)


def is_apology(raw_text: str) -> bool:
    """True when the model answered with a refusal/apology instead of data."""
    head = raw_text.lstrip().lstrip('"\'`').lower()
    return head.startswith(APOLOGY_PREFIXES)


def strip_code_fences(raw_text: str) -> str:
    text = re.sub(r'```(?:json)?\s*', '', raw_text)
    return text.replace('```', '').strip()


def extract_balanced_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` span in ``text``.

    Braces inside JSON strings are ignored, so prose around the object and
    braces in string values do not confuse the scan.
    """
    start = text.find('{')
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == '{':
            depth += 1
        elif char == '}':
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def clean_llm_json_output(raw_text: str) -> dict:
    """
    Decode a JSON object from raw model output.

    Tries the text as-is (minus markdown fences) first, then the first
    balanced object span. Raises ``ExtractionParseError`` when neither
    decodes to an object.
    """
    if not raw_text or not raw_text.strip():
        raise ExtractionParseError("Empty model output", code="malformed_json")

    if is_apology(raw_text):
        raise ExtractionParseError(
            "Model declined to answer",
            code="apology",
            details={"raw": raw_text[:200]},
        )

    text = strip_code_fences(raw_text)
    try:
        decoded = json.loads(text)
        if isinstance(decoded, dict):
            return decoded
    except json.JSONDecodeError:
        pass

    # Repair: first balanced object inside surrounding prose
    candidate = extract_balanced_object(text)
    if candidate is not None:
        try:
            decoded = json.loads(candidate)
            if isinstance(decoded, dict):
                logger.debug("Recovered JSON object from surrounding text")
                return decoded
        except json.JSONDecodeError:
            pass

    raise ExtractionParseError(
        "Model output is not a JSON object",
        code="malformed_json",
        details={"raw": raw_text[:200]},
    )


def parse_llm_response(result: str, schema_class: Type[ModelT]) -> ModelT:
    """
    Parse LLM response and validate against schema.
    """
    try:
        data = clean_llm_json_output(result)
        return schema_class.model_validate(data)

    except ExtractionParseError as e:
        logger.error(f"Error parsing {schema_class.__name__} ({e.code}): {e.message}")
        logger.debug(f"Raw output (first 500 chars): {str(result)[:500]}...")
        raise

    except ValidationError as e:
        logger.error(f"Error parsing {schema_class.__name__}: {e.error_count()} validation error(s)")
        raise ExtractionParseError(
            f"Output does not match {schema_class.__name__}",
            code="schema_mismatch",
            details={"errors": e.errors(include_url=False)[:5]},
        ) from e
