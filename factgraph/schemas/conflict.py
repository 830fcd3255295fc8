from uuid import UUID

from pydantic import BaseModel, Field


class ConflictWarning(BaseModel):
    """One subject holding more than one current value for a single-valued predicate."""

    subject_entity_id: UUID
    predicate: str
    values: list[str] = Field(description="Distinct object ids / literal values, NULL sentinel included")
    assertion_ids: list[UUID]


class ConflictReport(BaseModel):
    predicates: list[str]
    scanned: int
    truncated: bool = False
    conflicts: list[ConflictWarning] = Field(default_factory=list)
