"""Fixed-size character chunking.

Documents are split into overlapping character windows. Offsets always
describe the raw window, while the stored text is the stripped window.
"""

from dataclasses import dataclass
from typing import List

from factgraph.core.exceptions import ValidationError

DEFAULT_CHUNK_SIZE = 2200
DEFAULT_OVERLAP = 200


@dataclass
class TextChunk:
    """One window of document text.

    Attributes:
        index: Position among the non-empty chunks, from 0
        text: Window text with surrounding whitespace stripped
        start_offset: Start of the raw window in the source text
        end_offset: End (exclusive) of the raw window
    """
    index: int
    text: str
    start_offset: int
    end_offset: int


class CharChunker:
    """Splits text into windows of `chunk_size` chars advancing by `chunk_size - overlap`."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP):
        if chunk_size <= 0:
            raise ValidationError("chunk_size must be > 0")
        if overlap < 0:
            raise ValidationError("overlap must be >= 0")
        if overlap >= chunk_size:
            raise ValidationError("overlap must be < chunk_size")

        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> List[TextChunk]:
        chunks: List[TextChunk] = []
        length = len(text or "")
        start = 0

        while start < length:
            end = min(length, start + self.chunk_size)
            window = text[start:end].strip()
            if window:
                chunks.append(
                    TextChunk(index=len(chunks), text=window, start_offset=start, end_offset=end)
                )
            if end == length:
                break
            start = end - self.overlap

        return chunks
