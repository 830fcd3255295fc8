from pydantic import ValidationError as PydanticValidationError

from factgraph.core.exceptions import UpstreamError
from factgraph.core.llm_client import ChatCompletionsClient
from factgraph.schemas.extraction import ExtractionOutput
from factgraph.services.extraction.prompt import build_extraction_messages
from factgraph.utils.json_parser import coerce_stringified_fields, parse_json_safely
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def parse_extraction_output(text: str) -> ExtractionOutput:
    """Validate raw model text as an extraction payload.

    Tolerates code fences, surrounding prose and entities/relations returned
    as JSON strings. Missing or null lists become empty.

    Raises:
        UpstreamError: the text is not a valid extraction payload
    """
    parsed = parse_json_safely(text)
    if not isinstance(parsed, dict):
        raise UpstreamError("Model did not return valid JSON.")

    coerced = coerce_stringified_fields(parsed, ["entities", "relations"])
    for key in ("entities", "relations"):
        if coerced.get(key) is None:
            coerced[key] = []

    try:
        return ExtractionOutput.model_validate(coerced)
    except PydanticValidationError as e:
        raise UpstreamError(f"Model output failed validation: {e.error_count()} errors", original_error=e) from e


class LLMExtractor:
    """Extracts entity and relation candidates from one chunk of text."""

    def __init__(self, client: ChatCompletionsClient, prompt_version: str):
        self.client = client
        self.prompt_version = prompt_version

    @property
    def model(self) -> str:
        return self.client.model

    async def extract(self, chunk_text: str) -> ExtractionOutput:
        text = await self.client.complete(build_extraction_messages(chunk_text))
        output = parse_extraction_output(text)

        LOGGER.debug(
            "Chunk extraction parsed",
            extra={"entities": len(output.entities), "relations": len(output.relations)}
        )
        return output
