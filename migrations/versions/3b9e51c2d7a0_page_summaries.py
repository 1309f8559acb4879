"""Page summaries and gate rejections

Revision ID: 3b9e51c2d7a0
Revises:
Create Date: 2026-10-19 09:41:07.512334

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b9e51c2d7a0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # One row per (book, page); a summary is present only once the gate accepted it
    op.create_table('page_summaries',
        sa.Column('book_id', sa.Text(), nullable=False),
        sa.Column('page_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('ocr_text', sa.Text(), nullable=True),
        sa.Column('ocr_confidence', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('ocr_structured', postgresql.JSONB(), nullable=True),
        sa.Column('summary_markdown', sa.Text(), nullable=True),
        sa.Column('summary_structured', postgresql.JSONB(), nullable=True),
        sa.Column('confidence', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('compliance_score', sa.Float(), nullable=True),
        sa.Column('validation_meta', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('embedding', postgresql.ARRAY(sa.Float()), nullable=True),
        sa.Column('embedding_model', sa.Text(), nullable=True),
        sa.Column('embedding_updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('provider_used', sa.Text(), nullable=True),
        sa.Column('is_stale', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint('confidence >= 0 AND confidence <= 100', name='ck_page_summaries_confidence'),
        sa.CheckConstraint(
            'compliance_score IS NULL OR (compliance_score >= 0 AND compliance_score <= 100)',
            name='ck_page_summaries_compliance_score'
        ),
        sa.CheckConstraint(
            'summary_markdown IS NULL OR compliance_score IS NOT NULL',
            name='ck_page_summaries_scored_summary'
        ),
        sa.PrimaryKeyConstraint('book_id', 'page_number')
    )

    # Latest gate rejection per page; never holds a summary
    op.create_table('page_summary_rejections',
        sa.Column('book_id', sa.Text(), nullable=False),
        sa.Column('page_number', sa.Integer(), nullable=False),
        sa.Column('compliance_score', sa.Float(), nullable=False),
        sa.Column('minimum_score', sa.Float(), nullable=False),
        sa.Column('violations', postgresql.JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('provider_used', sa.Text(), nullable=True),
        sa.Column('rejected_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('book_id', 'page_number')
    )

    # Create indexes
    op.create_index('idx_page_summaries_embedding_model', 'page_summaries', ['book_id', 'embedding_model'])
    op.create_index('idx_page_summaries_stale', 'page_summaries', ['is_stale'])


def downgrade() -> None:
    """Downgrade schema."""
    # Drop indexes
    op.drop_index('idx_page_summaries_stale', table_name='page_summaries')
    op.drop_index('idx_page_summaries_embedding_model', table_name='page_summaries')

    # Drop tables
    op.drop_table('page_summary_rejections')
    op.drop_table('page_summaries')
