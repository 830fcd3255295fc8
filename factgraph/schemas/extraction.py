"""LLM extraction payload and pipeline result models.

The candidate models are the validation boundary for untrusted model output:
anything that does not validate here never reaches the fact store.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from factgraph.schemas.common import PartialFailure


class EvidenceQuote(BaseModel):
    quote: Optional[str] = Field(default=None, min_length=1)


class ExtractedEntity(BaseModel):
    type: str = Field(min_length=1)
    name: str = Field(min_length=1)
    identifiers: Optional[dict[str, Any]] = None
    aliases: Optional[list[str]] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)


class ExtractedRelation(BaseModel):
    subject: str = Field(min_length=1)
    predicate: str = Field(min_length=1)
    object: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=1)
    evidence: Optional[EvidenceQuote] = None


class ExtractionOutput(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)


class ChunkFailure(BaseModel):
    chunk_id: UUID
    chunk_index: int
    error: str


class ExtractionResult(BaseModel):
    document_id: UUID
    extraction_run_id: UUID
    attempted_chunks: int = 0
    processed_chunks: int = 0
    failed_chunks: int = 0
    failures: list[ChunkFailure] = Field(default_factory=list)
    entities_upserted: int = 0
    assertions_inserted: int = 0
    graph_edges_upserted: int = 0
    stale: list[PartialFailure] = Field(default_factory=list)
