"""create_fact_store

Revision ID: 3f9a1c2d7e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'entities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('canonical_name', sa.Text(), nullable=False),
        sa.Column('aliases', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('identifiers', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('type', 'canonical_name', name='entities_type_canonical_name_unique'),
    )
    op.create_index('entities_type_idx', 'entities', ['type'])
    op.create_index('entities_canonical_name_idx', 'entities', ['canonical_name'])

    op.create_table(
        'documents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('doc_type', sa.String(), nullable=False),
        sa.Column('cik', sa.String(), nullable=False),
        sa.Column('accession_no', sa.String(), nullable=False),
        sa.Column('filing_date', sa.Date(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('content_hash', sa.String(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('source', 'accession_no', name='documents_source_accession_unique'),
    )
    op.create_index('documents_cik_filing_date_idx', 'documents', ['cik', 'filing_date'])

    op.create_table(
        'document_chunks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('start_offset', sa.Integer(), nullable=True),
        sa.Column('end_offset', sa.Integer(), nullable=True),
        sa.Column('vector_point_id', sa.String(), nullable=True),
        _created_at(),
        sa.UniqueConstraint('document_id', 'chunk_index', name='document_chunks_doc_index_unique'),
    )
    op.create_index('document_chunks_document_id_idx', 'document_chunks', ['document_id'])

    op.create_table(
        'extraction_runs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('model', sa.String(), nullable=False),
        sa.Column('prompt_version', sa.String(), nullable=False),
        sa.Column('parameters', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('finished_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index('extraction_runs_started_at_idx', 'extraction_runs', ['started_at'])

    op.create_table(
        'assertions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('subject_entity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('entities.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('predicate', sa.String(), nullable=False),
        sa.Column('object_entity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('entities.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('literal_value', postgresql.JSONB(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('source_document_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('documents.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('source_chunk_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('document_chunks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('extraction_run_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('extraction_runs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('valid_from', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('valid_to', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        _created_at(),
        sa.CheckConstraint('confidence >= 0 AND confidence <= 1', name='assertions_confidence_range'),
        sa.CheckConstraint(
            "(status = 'active' AND valid_to IS NULL) OR (status <> 'active' AND valid_to IS NOT NULL)",
            name='assertions_status_valid_to',
        ),
    )
    op.create_index('assertions_subject_predicate_idx', 'assertions', ['subject_entity_id', 'predicate'])
    op.create_index('assertions_object_idx', 'assertions', ['object_entity_id'])
    op.create_index('assertions_status_idx', 'assertions', ['status'])
    op.create_index('assertions_source_document_idx', 'assertions', ['source_document_id'])
    op.create_index('assertions_valid_from_idx', 'assertions', ['valid_from'])

    op.create_table(
        'corrections',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('target_assertion_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('assertions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('new_assertion_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('assertions.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
    )
    op.create_index('corrections_target_assertion_idx', 'corrections', ['target_assertion_id'])

    op.create_table(
        'signals',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('cik', sa.String(), nullable=False),
        sa.Column('subject_entity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('entities.id', ondelete='SET NULL'), nullable=True),
        sa.Column('signal_key', sa.String(), nullable=False),
        sa.Column('as_of_date', sa.Date(), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=False, server_default='manual'),
        sa.Column('source_ref', sa.String(), nullable=True),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False, server_default=sa.text('0.9')),
        sa.Column('raw', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('cik', 'signal_key', 'as_of_date', 'source', name='signals_unique'),
    )
    op.create_index('signals_cik_key_date_idx', 'signals', ['cik', 'signal_key', 'as_of_date'])
    op.create_index('signals_subject_entity_idx', 'signals', ['subject_entity_id'])

    op.create_table(
        'chunk_embeddings',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('embedding', Vector(384), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('embedding_model', sa.String(), nullable=True),
        sa.Column('embedded_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.execute(
        'CREATE INDEX chunk_embeddings_embedding_hnsw_idx ON chunk_embeddings '
        'USING hnsw (embedding vector_cosine_ops)'
    )
    op.execute('CREATE INDEX chunk_embeddings_payload_gin_idx ON chunk_embeddings USING gin (payload)')


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('chunk_embeddings')
    op.drop_table('signals')
    op.drop_table('corrections')
    op.drop_table('assertions')
    op.drop_table('extraction_runs')
    op.drop_table('document_chunks')
    op.drop_table('documents')
    op.drop_table('entities')
