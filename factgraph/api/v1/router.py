from fastapi import APIRouter

from factgraph.api.v1.endpoints import (
    citations,
    conflicts,
    corrections,
    documents,
    entities,
    facts,
    graph,
    ingest,
    search,
    signals,
)

api_router = APIRouter()

api_router.include_router(entities.router, prefix="/entities", tags=["Entities"])
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(search.router, prefix="/search", tags=["Search"])
api_router.include_router(graph.router, prefix="/graph", tags=["Graph"])
api_router.include_router(facts.router, prefix="/facts", tags=["Facts"])
api_router.include_router(citations.router, prefix="/citations", tags=["Citations"])
api_router.include_router(signals.router, prefix="/signals", tags=["Signals"])
api_router.include_router(conflicts.router, prefix="/conflicts", tags=["Conflicts"])
api_router.include_router(corrections.router, prefix="/corrections", tags=["Corrections"])
api_router.include_router(ingest.router, prefix="/ingest", tags=["Ingestion"])

__all__ = ["api_router"]
