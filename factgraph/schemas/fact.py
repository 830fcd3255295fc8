"""Assertion, entity and fact-lookup models."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

AssertionStatus = Literal["active", "retracted", "superseded"]
EntityType = Literal["company", "instrument", "sector", "country", "event", "concept", "indicator"]


class AssertionDraft(BaseModel):
    """Fields for a new assertion before it is written."""

    subject_entity_id: UUID
    predicate: str
    object_entity_id: Optional[UUID] = None
    literal_value: Optional[Any] = None
    confidence: float = Field(ge=0, le=1)
    source_document_id: UUID
    source_chunk_id: Optional[UUID] = None
    extraction_run_id: Optional[UUID] = None
    valid_from: Optional[datetime] = None


class AssertionFilter(BaseModel):
    subject_entity_id: Optional[UUID] = None
    predicate: Optional[str] = None
    object_entity_id: Optional[UUID] = None
    predicates: Optional[list[str]] = None


class AssertionRecord(BaseModel):
    """Read model for an assertion row."""

    id: UUID
    subject_entity_id: UUID
    predicate: str
    object_entity_id: Optional[UUID] = None
    literal_value: Optional[Any] = None
    confidence: float
    source_document_id: UUID
    source_chunk_id: Optional[UUID] = None
    extraction_run_id: Optional[UUID] = None
    valid_from: datetime
    valid_to: Optional[datetime] = None
    status: AssertionStatus

    model_config = {"from_attributes": True}


class FactsQuery(BaseModel):
    subject_entity_id: Optional[UUID] = None
    predicate: Optional[str] = None
    object_entity_id: Optional[UUID] = None
    status: Optional[AssertionStatus] = None
    limit: Optional[int] = None

    def has_filter(self) -> bool:
        return any(
            v is not None
            for v in (self.subject_entity_id, self.predicate, self.object_entity_id, self.status)
        )


class FactsResult(BaseModel):
    facts: list[AssertionRecord] = Field(default_factory=list)
