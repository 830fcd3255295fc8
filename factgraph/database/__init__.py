"""SQLAlchemy models for the fact store."""

from factgraph.database.models import (
    Assertion,
    ChunkEmbedding,
    Correction,
    Document,
    DocumentChunk,
    Entity,
    ExtractionRun,
    Signal,
)

__all__ = [
    "Assertion",
    "ChunkEmbedding",
    "Correction",
    "Document",
    "DocumentChunk",
    "Entity",
    "ExtractionRun",
    "Signal",
]
