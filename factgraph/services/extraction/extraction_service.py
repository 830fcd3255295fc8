"""Document extraction pipeline.

For each chunk of a stored document: ask the extractor for candidates,
resolve entities, insert normalized assertions, commit, then project the
chunk's entities, mentions and assertion edges into the graph.

Chunk-level failures (extractor or store) are recorded and skipped. Graph
projection failures are reported as stale steps; the fact store stays
authoritative.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.exceptions import NotFoundError
from factgraph.database.models import Entity
from factgraph.repositories.assertion_repository import AssertionRepository
from factgraph.repositories.audit_repository import ExtractionRunRepository
from factgraph.repositories.document_repository import DocumentChunkRepository, DocumentRepository
from factgraph.schemas.common import PartialFailure
from factgraph.schemas.extraction import ChunkFailure, ExtractionOutput, ExtractionResult
from factgraph.schemas.fact import AssertionDraft
from factgraph.services.entity.resolver import EntityResolver
from factgraph.services.extraction.llm_extractor import LLMExtractor
from factgraph.services.extraction.normalization import entity_key, normalize_predicate
from factgraph.services.graph.constants import MENTION_CONFIDENCE
from factgraph.services.graph.graph_projector import GraphProjector, assertion_edge_row
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_MAX_FAILURES_REPORTED = 25


class ChunkWork(NamedTuple):
    id: uuid.UUID
    chunk_index: int
    text: str


class ExtractionService:
    """Runs LLM extraction over a document's chunks and projects the results."""

    def __init__(
        self,
        session: AsyncSession,
        extractor: LLMExtractor,
        projector: GraphProjector,
        max_failures_reported: int = DEFAULT_MAX_FAILURES_REPORTED,
    ):
        self.session = session
        self.extractor = extractor
        self.projector = projector
        self.max_failures_reported = max_failures_reported

        self.documents = DocumentRepository(session)
        self.chunks = DocumentChunkRepository(session)
        self.assertions = AssertionRepository(session)
        self.runs = ExtractionRunRepository(session)
        self.resolver = EntityResolver(session)

    async def extract_document(
        self, document_id: uuid.UUID, max_chunks: Optional[int] = None
    ) -> ExtractionResult:
        """Extract and project one document.

        Args:
            document_id: Stored document to process
            max_chunks: Only the first N chunks by chunk_index

        Raises:
            NotFoundError: document does not exist
        """
        doc = await self.documents.get_by_id(document_id)
        if doc is None:
            raise NotFoundError("Document", document_id)

        chunks = await self.chunks.get_by_document(doc.id, limit=max_chunks)

        try:
            run = await self.runs.start(
                model=self.extractor.model,
                prompt_version=self.extractor.prompt_version,
                parameters={"document_id": str(doc.id), "max_chunks": max_chunks},
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Extraction run started",
            extra={"document_id": str(doc.id), "extraction_run_id": str(run.id), "chunks": len(chunks)}
        )

        result = ExtractionResult(document_id=doc.id, extraction_run_id=run.id)

        await self._project(
            result,
            "graph.upsert_filing_and_chunks",
            [str(doc.id)],
            self.projector.upsert_filing_and_chunks(
                {
                    "documentId": doc.id,
                    "cik": doc.cik,
                    "accessionNo": doc.accession_no,
                    "docType": doc.doc_type,
                    "filingDate": doc.filing_date,
                },
                [{"id": c.id, "documentId": c.document_id, "chunkIndex": c.chunk_index} for c in chunks],
            ),
        )

        # A chunk rollback expires every loaded row, so the loop only reads plain values
        doc_id, run_id = doc.id, run.id
        work = [ChunkWork(c.id, c.chunk_index, c.text) for c in chunks]

        failures: List[ChunkFailure] = []
        for chunk in work:
            result.attempted_chunks += 1

            try:
                output = await self.extractor.extract(chunk.text)
                await self._process_chunk(result, doc_id, chunk, run_id, output)
            except Exception as e:
                LOGGER.warning(
                    f"Chunk extraction failed: {e}",
                    extra={"chunk_id": str(chunk.id), "chunk_index": chunk.chunk_index}
                )
                result.failed_chunks += 1
                failures.append(ChunkFailure(chunk_id=chunk.id, chunk_index=chunk.chunk_index, error=str(e)))
                continue

            result.processed_chunks += 1

        try:
            await self.runs.finish(run_id)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        result.failures = failures[: self.max_failures_reported]

        LOGGER.info(
            "Extraction run finished",
            extra={
                "document_id": str(doc_id),
                "extraction_run_id": str(run_id),
                "processed_chunks": result.processed_chunks,
                "failed_chunks": result.failed_chunks,
                "assertions_inserted": result.assertions_inserted,
                "stale_steps": len(result.stale),
            }
        )
        return result

    async def _process_chunk(
        self,
        result: ExtractionResult,
        doc_id: uuid.UUID,
        chunk: ChunkWork,
        run_id: uuid.UUID,
        output: ExtractionOutput,
    ) -> None:
        now = datetime.now(timezone.utc)

        try:
            endpoints = [name for rel in output.relations for name in (rel.subject, rel.object)]
            by_key = await self.resolver.resolve_extracted(output.entities, endpoints)
            drafts = self._build_drafts(output, by_key, doc_id, chunk.id, run_id, now)
            inserted = await self.assertions.insert_many(drafts) if drafts else []
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        entities = list({e.id: e for e in by_key.values()}.values())
        result.entities_upserted += len(entities)
        result.assertions_inserted += len(inserted)

        await self._project(
            result,
            "graph.upsert_entities",
            [str(e.id) for e in entities],
            self.projector.upsert_entities(
                [{"id": e.id, "type": e.type, "name": e.canonical_name} for e in entities]
            ),
        )
        await self._project(
            result,
            "graph.upsert_mentions",
            [str(chunk.id)],
            self.projector.upsert_mentions(
                [
                    {
                        "chunkId": chunk.id,
                        "entityId": e.id,
                        "confidence": MENTION_CONFIDENCE,
                        "sourceDocumentId": doc_id,
                        "validFrom": now,
                    }
                    for e in entities
                ]
            ),
        )
        if inserted:
            edge_ids = [str(a.id) for a in inserted]
            upserted = await self._project(
                result,
                "graph.upsert_assertion_edges",
                edge_ids,
                self.projector.upsert_assertion_edges([assertion_edge_row(a) for a in inserted]),
            )
            if upserted is not None:
                result.graph_edges_upserted += upserted
                if upserted < len(inserted):
                    result.stale.append(
                        PartialFailure(
                            step="graph.upsert_assertion_edges",
                            error=f"Projected {upserted} of {len(inserted)} assertion edges",
                            ids=edge_ids,
                        )
                    )

    def _build_drafts(
        self,
        output: ExtractionOutput,
        by_key: Dict[str, Entity],
        doc_id: uuid.UUID,
        chunk_id: uuid.UUID,
        run_id: uuid.UUID,
        now: datetime,
    ) -> List[AssertionDraft]:
        drafts = []
        for rel in output.relations:
            subject = by_key.get(entity_key(rel.subject))
            obj = by_key.get(entity_key(rel.object))
            if subject is None or obj is None:
                LOGGER.info(
                    "Dropped relation with unresolved endpoint",
                    extra={"subject": rel.subject, "object": rel.object, "chunk_id": str(chunk_id)}
                )
                continue
            if subject.id == obj.id:
                LOGGER.info(
                    "Dropped self-referential relation",
                    extra={"entity_name": subject.canonical_name, "chunk_id": str(chunk_id)}
                )
                continue

            predicate = normalize_predicate(rel.predicate)
            if predicate is None:
                LOGGER.info(
                    "Dropped relation with unknown predicate",
                    extra={"predicate": rel.predicate, "chunk_id": str(chunk_id)}
                )
                continue

            drafts.append(
                AssertionDraft(
                    subject_entity_id=subject.id,
                    predicate=predicate,
                    object_entity_id=obj.id,
                    confidence=rel.confidence,
                    source_document_id=doc_id,
                    source_chunk_id=chunk_id,
                    extraction_run_id=run_id,
                    valid_from=now,
                )
            )
        return drafts

    async def _project(
        self, result: ExtractionResult, step: str, ids: List[str], call: Awaitable[Any]
    ) -> Any:
        try:
            return await call
        except Exception as e:
            LOGGER.error(f"Graph projection step failed: {step}", exc_info=True, extra={"ids": ids[:10]})
            result.stale.append(PartialFailure(step=step, error=str(e), ids=ids))
            return None
