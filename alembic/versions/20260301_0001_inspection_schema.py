"""Inspection, damage, estimate, knowledge base and embedding tables

Revision ID: 20260301_0001_inspection_schema
Revises:
Create Date: 2026-03-01 00:01:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20260301_0001_inspection_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSION = 1024


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    """Create the inspection schema and the pgvector table."""
    op.create_table(
        "inspections",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("shop_id", sa.String(64), nullable=False),
        sa.Column("vin", sa.String(17), nullable=False),
        sa.Column("api_version", sa.String(4), nullable=False, server_default="2"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("media", postgresql.JSONB(), nullable=False),
        sa.Column("options", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("progress", postgresql.JSONB(), nullable=True),
        sa.Column("overall_condition", sa.String(16), nullable=True),
        sa.Column("recommendations", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("total_estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("summary_text", sa.Text(), nullable=True),
        sa.Column("embedding_id", sa.String(128), nullable=True),
        sa.Column("error_category", sa.String(32), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'complete', 'failed')",
            name="ck_inspections_status",
        ),
    )
    op.create_index("ix_inspections_shop_id", "inspections", ["shop_id"])
    op.create_index("ix_inspections_vin", "inspections", ["vin"])
    op.create_index("ix_inspections_status", "inspections", ["status"])

    op.create_table(
        "damages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "inspection_id",
            sa.Uuid(),
            sa.ForeignKey("inspections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("location", sa.String(200), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("bounding_box", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "severity IN ('minor', 'moderate', 'severe')", name="ck_damages_severity"
        ),
    )
    op.create_index("ix_damages_inspection_id", "damages", ["inspection_id"])

    op.create_table(
        "estimate_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "inspection_id",
            sa.Uuid(),
            sa.ForeignKey("inspections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "damage_id",
            sa.Uuid(),
            sa.ForeignKey("damages.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(8), nullable=False),
        sa.Column("labor_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("labor_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("parts_cost", sa.Numeric(14, 4), nullable=False),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_estimate_items_inspection_id", "estimate_items", ["inspection_id"])

    op.create_table(
        "knowledge_base_chunks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("shop_id", sa.String(64), nullable=False),
        sa.Column("namespace", sa.String(80), nullable=False),
        sa.Column("chunk_id", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("embedding_id", sa.String(128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("namespace", "chunk_id", name="uq_kb_chunk_namespace_chunk"),
    )
    op.create_index("ix_knowledge_base_chunks_shop_id", "knowledge_base_chunks", ["shop_id"])
    op.create_index("ix_knowledge_base_chunks_namespace", "knowledge_base_chunks", ["namespace"])

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    op.execute(
        f"""
        CREATE TABLE IF NOT EXISTS embedding_vectors (
            id TEXT PRIMARY KEY,
            shop_id TEXT NOT NULL,
            reference_type TEXT NOT NULL,
            reference_id TEXT NOT NULL,
            embedding VECTOR({EMBEDDING_DIMENSION}) NOT NULL,
            metadata JSONB DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ DEFAULT now()
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_embedding_vectors_scope "
        "ON embedding_vectors (shop_id, reference_type);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_embedding_vectors_reference "
        "ON embedding_vectors (reference_id);"
    )


def downgrade() -> None:
    """Drop everything created in upgrade."""
    op.execute("DROP INDEX IF EXISTS idx_embedding_vectors_reference")
    op.execute("DROP INDEX IF EXISTS idx_embedding_vectors_scope")
    op.execute("DROP TABLE IF EXISTS embedding_vectors")

    op.drop_index("ix_knowledge_base_chunks_namespace", table_name="knowledge_base_chunks")
    op.drop_index("ix_knowledge_base_chunks_shop_id", table_name="knowledge_base_chunks")
    op.drop_table("knowledge_base_chunks")

    op.drop_index("ix_estimate_items_inspection_id", table_name="estimate_items")
    op.drop_table("estimate_items")

    op.drop_index("ix_damages_inspection_id", table_name="damages")
    op.drop_table("damages")

    op.drop_index("ix_inspections_status", table_name="inspections")
    op.drop_index("ix_inspections_vin", table_name="inspections")
    op.drop_index("ix_inspections_shop_id", table_name="inspections")
    op.drop_table("inspections")
