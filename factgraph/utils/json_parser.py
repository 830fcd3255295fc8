import json
import re
from typing import Any, Dict, List, Union

from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from text, handling common LLM formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing whitespace
    - A JSON object wrapped in prose

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text[7:]
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text[3:]

    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text[:-3]

    cleaned_text = cleaned_text.strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting recovery from surrounding prose")

    # Outermost braces: first "{" to last "}"
    first = cleaned_text.find("{")
    last = cleaned_text.rfind("}")
    if first >= 0 and last > first:
        try:
            return json.loads(cleaned_text[first:last + 1])
        except json.JSONDecodeError as e:
            LOGGER.debug(f"Brace-slice parse failed: {e}")

    json_match = re.search(r'(\[[^\[\]]*(?:\[[^\[\]]*\][^\[\]]*)*\])', cleaned_text, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group(1))
        except json.JSONDecodeError as e:
            LOGGER.debug(f"Array-slice parse failed: {e}")

    LOGGER.error("Failed to parse JSON from model output", extra={"preview": cleaned_text[:200]})
    return None


def coerce_stringified_fields(value: Any, keys: List[str]) -> Any:
    """Decode fields that a model returned as JSON strings instead of arrays/objects.

    Fields that do not decode are left untouched.
    """
    if not isinstance(value, dict):
        return value

    out = dict(value)
    for key in keys:
        field = out.get(key)
        if isinstance(field, str):
            try:
                out[key] = json.loads(field)
            except json.JSONDecodeError:
                LOGGER.debug(f"Field '{key}' is a string but not JSON; leaving as-is")
    return out
