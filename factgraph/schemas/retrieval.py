"""Request/response models for hybrid retrieval.

Grouped by access pattern:
- Vector search with progressive broadening, and the per-filing timeline fan-out
- Graph traversal and shortest-path explanation
- Citations, entity search and document listing
"""

from datetime import date
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

DocType = Literal["10-k", "10-q", "20-f", "6-k"]


# Vector search
class VectorSearchFilters(BaseModel):
    """Ordered most-general to most-specific: cik, doc_type, accession_no."""

    cik: Optional[str] = None
    doc_type: Optional[DocType] = None
    accession_no: Optional[str] = None


class VectorSearchRequest(BaseModel):
    query: str
    top_k: Optional[int] = None
    filters: VectorSearchFilters = Field(default_factory=VectorSearchFilters)


class VectorHit(BaseModel):
    score: float
    chunk_id: str
    document_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class VectorSearchResult(BaseModel):
    model: str
    hits: list[VectorHit] = Field(default_factory=list)
    matched_filters: Optional[dict[str, str]] = Field(
        default=None,
        description="Filter set of the attempt that produced the hits ({} means global, null means no attempt matched)",
    )
    attempts: int = 0


class TimelineSearchRequest(BaseModel):
    query: str
    cik: Optional[str] = None
    doc_type: Optional[DocType] = None
    limit_docs: Optional[int] = None
    top_k_per_doc: Optional[int] = None
    concurrency: Optional[int] = None


class TimelineDocument(BaseModel):
    document_id: UUID
    cik: str
    accession_no: str
    doc_type: str
    filing_date: date
    url: str
    hits: list[VectorHit] = Field(default_factory=list)


class TimelineSearchResult(BaseModel):
    query: str
    model: str
    documents_considered: int = 0
    results: list[TimelineDocument] = Field(default_factory=list)


# Graph
class GraphNode(BaseModel):
    id: str
    labels: list[str] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphEdge(BaseModel):
    type: str
    from_id: str = Field(serialization_alias="from")
    to_id: str = Field(serialization_alias="to")
    properties: dict[str, Any] = Field(default_factory=dict)


class GraphResult(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)


class GraphTraverseRequest(BaseModel):
    seed_entity_ids: list[str]
    edge_types: Optional[list[str]] = None
    depth: Optional[int] = None
    limit: Optional[int] = None


class ExplainPathRequest(BaseModel):
    from_entity_id: str
    to_entity_id: str
    edge_types: Optional[list[str]] = None
    max_hops: Optional[int] = None


# Citations
class CitationDocument(BaseModel):
    cik: str
    accession_no: str
    doc_type: str
    filing_date: date
    url: str


class ChunkCitation(BaseModel):
    chunk_id: UUID
    document_id: UUID
    chunk_index: int
    text: str
    document: CitationDocument


class AssertionCitation(BaseModel):
    assertion_id: UUID
    citation: Optional[ChunkCitation] = None


class CitationsRequest(BaseModel):
    chunk_ids: list[UUID] = Field(default_factory=list)
    assertion_ids: list[UUID] = Field(default_factory=list)


class CitationsResult(BaseModel):
    chunks: list[ChunkCitation] = Field(default_factory=list)
    assertions: list[AssertionCitation] = Field(default_factory=list)


# Entities and documents
class EntitySearchHit(BaseModel):
    id: UUID
    type: str
    canonical_name: str
    aliases: list[str] = Field(default_factory=list)
    identifiers: dict[str, str] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class DocumentSummary(BaseModel):
    id: UUID
    source: str
    doc_type: str
    cik: str
    accession_no: str
    filing_date: date
    url: str

    model_config = {"from_attributes": True}
