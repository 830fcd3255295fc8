"""Correction engine: retract, supersede and override assertions.

State machine per assertion:

    active --retract--> retracted   (terminal)
    active --supersede/override--> superseded   (terminal, paired with a new active row)

All fact-store writes of one correction commit together. Graph projection
runs afterwards and its failures are reported in `stale` instead of raised.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from factgraph.core.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from factgraph.database.models import Assertion, Entity
from factgraph.repositories.assertion_repository import AssertionRepository, validate_draft
from factgraph.repositories.audit_repository import CorrectionRepository
from factgraph.repositories.document_repository import DocumentChunkRepository, DocumentRepository
from factgraph.repositories.entity_repository import EntityRepository
from factgraph.schemas.common import PartialFailure
from factgraph.schemas.correction import CorrectionRequest, CorrectionResult, NewAssertionFields
from factgraph.schemas.fact import AssertionDraft
from factgraph.services.graph.graph_projector import GraphProjector, assertion_edge_row, relationship_type
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CORRECTION_CONFIDENCE = 0.9


def build_replacement_draft(
    target: Assertion, fields: Optional[NewAssertionFields], valid_from: datetime
) -> AssertionDraft:
    """Merge replacement fields over the target's facts.

    Subject, predicate, object/literal, source document and source chunk
    inherit from the target when not given. Giving an object clears an
    inherited literal and vice versa.

    Raises:
        ValidationError: predicate or object/literal cannot be determined
    """
    fields = fields or NewAssertionFields()

    predicate = (fields.predicate or target.predicate or "").strip().upper()
    if not predicate:
        raise ValidationError("Cannot supersede an assertion without a predicate")
    relationship_type(predicate)

    if fields.object_entity_id is not None:
        object_entity_id, literal_value = fields.object_entity_id, None
    elif fields.literal_value is not None:
        object_entity_id, literal_value = None, fields.literal_value
    else:
        object_entity_id, literal_value = target.object_entity_id, target.literal_value

    if object_entity_id is None and literal_value is None:
        raise ValidationError(
            "Cannot supersede an assertion without an object (provide new_assertion.object_entity_id)"
        )

    draft = AssertionDraft(
        subject_entity_id=fields.subject_entity_id or target.subject_entity_id,
        predicate=predicate,
        object_entity_id=object_entity_id,
        literal_value=literal_value,
        confidence=fields.confidence if fields.confidence is not None else DEFAULT_CORRECTION_CONFIDENCE,
        source_document_id=fields.source_document_id or target.source_document_id,
        source_chunk_id=fields.source_chunk_id or target.source_chunk_id,
        extraction_run_id=None,
        valid_from=valid_from,
    )
    validate_draft(draft)
    return draft


class CorrectionService:
    """Applies one correction against the fact store, then the graph."""

    def __init__(self, session: AsyncSession, projector: GraphProjector):
        self.session = session
        self.assertions = AssertionRepository(session)
        self.corrections = CorrectionRepository(session)
        self.entities = EntityRepository(session)
        self.documents = DocumentRepository(session)
        self.chunks = DocumentChunkRepository(session)
        self.projector = projector

    async def execute(self, request: CorrectionRequest) -> CorrectionResult:
        """Validate and apply one correction request.

        Raises:
            ValidationError: malformed request or replacement
            NotFoundError: target or a referenced entity/document/chunk is missing
            ConflictError: target is no longer active, or a store constraint rejected the write
            AppError: unexpected store failure; nothing was committed
        """
        if request.action == "retract" and request.new_assertion is not None:
            raise ValidationError("new_assertion is not used for retract")

        try:
            if request.action == "retract":
                return await self.retract(request.target_assertion_id, request.reason, request.created_by)
            return await self.supersede(
                request.target_assertion_id,
                request.new_assertion,
                reason=request.reason,
                created_by=request.created_by,
                action=request.action,
            )
        except AppError:
            raise
        except IntegrityError as e:
            LOGGER.warning(
                f"Correction rejected by fact store constraint: {e.orig}",
                extra={"assertion_id": str(request.target_assertion_id), "action": request.action}
            )
            raise ConflictError(f"Correction rejected by fact store constraint: {e.orig}", original_error=e)
        except Exception as e:
            LOGGER.error(
                f"Correction failed: {str(e)}",
                exc_info=True,
                extra={"assertion_id": str(request.target_assertion_id), "action": request.action}
            )
            raise AppError(f"Correction failed: {str(e)}", original_error=e)

    async def _load_active_target(self, target_id: uuid.UUID) -> Assertion:
        target = await self.assertions.get_for_update(target_id)
        if target is None:
            raise NotFoundError("Assertion", target_id)
        if target.status != "active":
            raise ConflictError(
                f"Assertion {target_id} is already {target.status}; corrections apply to active assertions only"
            )
        return target

    async def _load_references(self, draft: AssertionDraft) -> List[Entity]:
        """Entities the replacement points at; every referenced row must exist."""
        subject = await self.entities.get_by_id(draft.subject_entity_id)
        if subject is None:
            raise NotFoundError("Entity", draft.subject_entity_id)
        entities = [subject]

        if draft.object_entity_id is not None:
            obj = await self.entities.get_by_id(draft.object_entity_id)
            if obj is None:
                raise NotFoundError("Entity", draft.object_entity_id)
            entities.append(obj)

        if await self.documents.get_by_id(draft.source_document_id) is None:
            raise NotFoundError("Document", draft.source_document_id)
        if draft.source_chunk_id is not None and await self.chunks.get_by_id(draft.source_chunk_id) is None:
            raise NotFoundError("DocumentChunk", draft.source_chunk_id)

        return entities

    async def retract(
        self,
        target_id: uuid.UUID,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> CorrectionResult:
        """Close the target as retracted and record the correction."""
        now = datetime.now(timezone.utc)

        try:
            await self._load_active_target(target_id)
            await self.assertions.update_assertion_status(target_id, "retracted", now)
            correction = await self.corrections.record(
                target_assertion_id=target_id,
                action="retract",
                reason=reason,
                created_by=created_by,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            "Assertion retracted",
            extra={"assertion_id": str(target_id), "correction_id": str(correction.id)}
        )

        result = CorrectionResult(
            target_assertion_id=target_id,
            action="retract",
            correction_id=correction.id,
        )
        await self._close_edges(result, target_id, "retracted", now)
        return result

    async def supersede(
        self,
        target_id: uuid.UUID,
        fields: Optional[NewAssertionFields],
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        action: str = "supersede",
    ) -> CorrectionResult:
        """Close the target as superseded and insert its replacement.

        `override` takes the same path and differs only in the recorded action.
        """
        now = datetime.now(timezone.utc)

        try:
            target = await self._load_active_target(target_id)
            draft = build_replacement_draft(target, fields, valid_from=now)
            entities = await self._load_references(draft)

            await self.assertions.update_assertion_status(target_id, "superseded", now)
            replacement = await self.assertions.insert_assertion(draft)
            correction = await self.corrections.record(
                target_assertion_id=target_id,
                action=action,
                reason=reason,
                created_by=created_by,
                new_assertion_id=replacement.id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        LOGGER.info(
            f"Assertion {action} applied",
            extra={
                "assertion_id": str(target_id),
                "new_assertion_id": str(replacement.id),
                "correction_id": str(correction.id),
            }
        )

        result = CorrectionResult(
            target_assertion_id=target_id,
            action=action,
            correction_id=correction.id,
            new_assertion_id=replacement.id,
        )
        await self._close_edges(result, target_id, "superseded", now)
        await self._project_replacement(result, replacement, entities)
        return result

    async def _project_replacement(
        self, result: CorrectionResult, replacement: Assertion, entities: List[Entity]
    ) -> None:
        entity_ids = [str(ent.id) for ent in entities]

        # Edge MERGE matches both endpoint nodes, so they go first
        try:
            await self.projector.upsert_entities(
                [{"id": ent.id, "type": ent.type, "name": ent.canonical_name} for ent in entities]
            )
        except Exception as e:
            LOGGER.error(
                "Graph entity upsert failed after correction commit",
                exc_info=True,
                extra={"entity_ids": entity_ids}
            )
            result.stale.append(
                PartialFailure(step="graph.upsert_entities", error=str(e), ids=entity_ids)
            )

        expected = 1 if replacement.object_entity_id is not None else 0
        try:
            result.graph_upserted_edges = await self.projector.upsert_assertion_edges(
                [assertion_edge_row(replacement)]
            )
        except Exception as e:
            LOGGER.error(
                "Graph edge upsert failed after correction commit",
                exc_info=True,
                extra={"assertion_id": str(replacement.id)}
            )
            result.stale.append(
                PartialFailure(
                    step="graph.upsert_assertion_edges",
                    error=str(e),
                    ids=[str(replacement.id)],
                )
            )
            return

        if result.graph_upserted_edges < expected:
            LOGGER.warning(
                "Assertion edge not projected; endpoint nodes missing from graph",
                extra={"assertion_id": str(replacement.id)}
            )
            result.stale.append(
                PartialFailure(
                    step="graph.upsert_assertion_edges",
                    error=f"Projected {result.graph_upserted_edges} of {expected} assertion edges",
                    ids=[str(replacement.id)],
                )
            )

    async def _close_edges(
        self, result: CorrectionResult, target_id: uuid.UUID, status: str, valid_to: datetime
    ) -> None:
        try:
            result.graph_closed_edges = await self.projector.close_assertion_edges(
                [str(target_id)], status, valid_to
            )
        except Exception as e:
            LOGGER.error(
                "Graph edge closure failed after correction commit",
                exc_info=True,
                extra={"assertion_id": str(target_id)}
            )
            result.stale.append(
                PartialFailure(step="graph.close_assertion_edges", error=str(e), ids=[str(target_id)])
            )
