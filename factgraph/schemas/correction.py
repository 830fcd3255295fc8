from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from factgraph.schemas.common import PartialFailure

CorrectionAction = Literal["retract", "supersede", "override"]


class NewAssertionFields(BaseModel):
    """Replacement fields for supersede/override. Unset fields inherit from the target."""

    subject_entity_id: Optional[UUID] = None
    predicate: Optional[str] = None
    object_entity_id: Optional[UUID] = None
    literal_value: Optional[object] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    source_document_id: Optional[UUID] = None
    source_chunk_id: Optional[UUID] = None


class CorrectionRequest(BaseModel):
    action: CorrectionAction
    target_assertion_id: UUID
    reason: Optional[str] = None
    created_by: Optional[str] = None
    new_assertion: Optional[NewAssertionFields] = None

    @model_validator(mode="after")
    def check_new_assertion(self) -> "CorrectionRequest":
        if self.action == "retract" and self.new_assertion is not None:
            raise ValueError("new_assertion is not used for retract")
        return self


class CorrectionResult(BaseModel):
    """What a correction wrote and which projection steps are stale."""

    target_assertion_id: UUID
    action: CorrectionAction
    correction_id: UUID
    new_assertion_id: Optional[UUID] = None
    graph_closed_edges: int = 0
    graph_upserted_edges: int = 0
    stale: list[PartialFailure] = Field(default_factory=list)
