"""Data access for the fact store. Repositories flush; services commit."""

from factgraph.repositories.assertion_repository import AssertionRepository
from factgraph.repositories.audit_repository import CorrectionRepository, ExtractionRunRepository
from factgraph.repositories.base_repository import BaseRepository
from factgraph.repositories.document_repository import DocumentChunkRepository, DocumentRepository
from factgraph.repositories.entity_repository import EntityRepository
from factgraph.repositories.signal_repository import SignalRepository
from factgraph.repositories.vector_index import PgVectorIndex

__all__ = [
    "AssertionRepository",
    "BaseRepository",
    "CorrectionRepository",
    "DocumentChunkRepository",
    "DocumentRepository",
    "EntityRepository",
    "ExtractionRunRepository",
    "PgVectorIndex",
    "SignalRepository",
]
