"""Response envelope and shared result models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: datetime
    request_id: str
    api_version: str = "v1"


class ApiResponse(BaseModel):
    """Envelope returned by every JSON endpoint."""

    status: bool = True
    message: str = "Operation successful"
    data: dict[str, Any] = Field(default_factory=dict)
    meta: Optional[ResponseMeta] = None


class ErrorDetail(BaseModel):
    """RFC 7807 problem detail."""

    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime


class PartialFailure(BaseModel):
    """A downstream step that failed after the authoritative write committed.

    The fact store holds the truth; `step` names what is now stale and can be
    re-run safely because every projection write is a MERGE.
    """

    step: str = Field(description="e.g. graph.close_assertion_edges, vector.upsert")
    error: str
    ids: list[str] = Field(default_factory=list, description="Ids whose projection is stale")
