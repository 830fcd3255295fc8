"""Process-wide clients shared by request handlers and background work."""

import uuid
from typing import Optional

from factgraph.core.config import Settings
from factgraph.core.database import DatabaseClient, build_engine
from factgraph.core.llm_client import ChatCompletionsClient
from factgraph.core.neo4j_client import Neo4jClient
from factgraph.database import models  # noqa: F401  registers tables on Base.metadata
from factgraph.repositories.vector_index import PgVectorIndex
from factgraph.schemas.extraction import ExtractionResult
from factgraph.schemas.ingestion import DocumentIngestRequest, DocumentIngestResult
from factgraph.schemas.signals import EarningsIngestRequest, EarningsIngestResult
from factgraph.services.embeddings.sentence_transformer import SentenceTransformerEmbedder
from factgraph.services.extraction.extraction_service import ExtractionService
from factgraph.services.extraction.llm_extractor import LLMExtractor
from factgraph.services.graph.graph_projector import GraphProjector
from factgraph.services.ingestion.bulk_ingestion import BulkIngestionService
from factgraph.services.ingestion.document_ingestion import DocumentIngestionService
from factgraph.services.ingestion.fetcher import HttpSourceFetcher
from factgraph.services.signals.earnings_provider import EarningsIngestionService, MassiveEarningsClient
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ServiceContainer:
    """Owns the database engine, graph driver, embedder and HTTP clients.

    Built once in the application lifespan and stored on `app.state`.
    Request-scoped services are constructed per request from a session
    plus the shared clients held here.
    """

    def __init__(
        self,
        settings: Settings,
        db: Optional[DatabaseClient] = None,
        neo4j: Optional[Neo4jClient] = None,
        embedder: Optional[SentenceTransformerEmbedder] = None,
        llm_client: Optional[ChatCompletionsClient] = None,
        fetcher: Optional[HttpSourceFetcher] = None,
        earnings_client: Optional[MassiveEarningsClient] = None,
    ):
        self.settings = settings
        self.db = db or DatabaseClient(build_engine(settings.db))
        self.neo4j = neo4j or Neo4jClient(settings.neo4j)
        self.projector = GraphProjector(self.neo4j)
        self.embedder = embedder or SentenceTransformerEmbedder(settings.embedding)
        self.vector_index = PgVectorIndex(self.db.session_maker, settings.embedding.model_name)
        self.llm_client = llm_client or ChatCompletionsClient(settings.llm)
        self.extractor = LLMExtractor(self.llm_client, settings.llm.prompt_version)
        self.fetcher = fetcher or HttpSourceFetcher(settings.ingestion)
        self.earnings_client = earnings_client or MassiveEarningsClient(settings.earnings)

    async def startup(self) -> None:
        """Verify connectivity and ensure graph schema.

        Failures are logged and startup continues so the health endpoint
        can report a degraded state.
        """
        try:
            await self.db.connect()
            if self.settings.db.auto_create_tables:
                await self.db.create_tables()
        except Exception as e:
            LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})

        try:
            await self.projector.ensure_schema()
        except Exception as e:
            LOGGER.error("Failed to ensure graph schema", exc_info=True, extra={"error": str(e)})

    async def shutdown(self) -> None:
        for name, closer in (
            ("neo4j", self.neo4j.close),
            ("llm_client", self.llm_client.aclose),
            ("fetcher", self.fetcher.aclose),
            ("earnings_client", self.earnings_client.aclose),
            ("database", self.db.disconnect),
        ):
            try:
                await closer()
            except Exception as e:
                LOGGER.error(f"Error closing {name}", exc_info=True, extra={"error": str(e)})

    async def ingest_document(self, request: DocumentIngestRequest) -> DocumentIngestResult:
        """Single-filer ingestion in its own session."""
        async with self.db.session() as session:
            service = DocumentIngestionService(
                session, self.fetcher, self.embedder, self.vector_index, self.settings.ingestion
            )
            return await service.ingest(request)

    async def extract_document(
        self, document_id: uuid.UUID, max_chunks: Optional[int] = None
    ) -> ExtractionResult:
        """Document extraction in its own session."""
        async with self.db.session() as session:
            service = ExtractionService(
                session,
                self.extractor,
                self.projector,
                max_failures_reported=self.settings.retrieval.max_failures_reported,
            )
            return await service.extract_document(document_id, max_chunks)

    async def ingest_earnings(self, request: EarningsIngestRequest) -> EarningsIngestResult:
        """Earnings-estimate ingestion in its own session."""
        async with self.db.session() as session:
            return await EarningsIngestionService(session, self.earnings_client).ingest(request)

    def bulk_ingestion(self) -> BulkIngestionService:
        return BulkIngestionService(
            self.ingest_document,
            self.extract_document,
            max_failures_reported=self.settings.retrieval.max_failures_reported,
        )
