"""add aeo audits and audit leads

Revision ID: 3b7e1a9c2d40
Revises:
Create Date: 2026-10-18 10:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op
from app.models.base import StringUUID

# revision identifiers, used by Alembic.
revision: str = "3b7e1a9c2d40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "aeo_audit_leads",
        sa.Column("id", StringUUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("brand_name", sa.String(length=100), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("grade", sa.String(length=2), nullable=True),
        sa.Column("report_data", postgresql.JSONB(), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("utm_source", sa.String(length=255), nullable=True),
        sa.Column("utm_medium", sa.String(length=255), nullable=True),
        sa.Column("utm_campaign", sa.String(length=255), nullable=True),
        sa.Column(
            "full_report_viewed",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", "url", name="uq_aeo_audit_leads_email_url"),
    )
    op.create_index(
        op.f("ix_aeo_audit_leads_email"),
        "aeo_audit_leads",
        ["email"],
        unique=False,
    )

    op.create_table(
        "aeo_audits",
        sa.Column("id", StringUUID(), nullable=False),
        sa.Column("brand_name", sa.String(length=100), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("aeo_score", sa.Float(), nullable=True),
        sa.Column("verdict", sa.String(length=32), nullable=True),
        sa.Column("grade", sa.String(length=2), nullable=True),
        sa.Column("entity_profile", postgresql.JSONB(), nullable=True),
        sa.Column("llm_mentions_count", sa.Integer(), nullable=True),
        sa.Column("llm_mentions_data", postgresql.JSONB(), nullable=True),
        sa.Column("chatgpt_summary", sa.Text(), nullable=True),
        sa.Column("ai_search_volume", sa.Integer(), nullable=True),
        sa.Column("knowledge_graph_exists", sa.Boolean(), nullable=True),
        sa.Column("knowledge_graph_data", postgresql.JSONB(), nullable=True),
        sa.Column("hallucinations", postgresql.JSONB(), nullable=True),
        sa.Column("action_plan", postgresql.JSONB(), nullable=True),
        sa.Column("full_report", postgresql.JSONB(), nullable=True),
        sa.Column("processing_status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "scrape_blocked",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("api_cost", sa.Float(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("lead_id", StringUUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lead_id"], ["aeo_audit_leads.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_aeo_audits_brand_name"), "aeo_audits", ["brand_name"], unique=False)
    op.create_index(op.f("ix_aeo_audits_lead_id"), "aeo_audits", ["lead_id"], unique=False)
    op.create_index(
        op.f("ix_aeo_audits_processing_status"),
        "aeo_audits",
        ["processing_status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_aeo_audits_processing_status"), table_name="aeo_audits")
    op.drop_index(op.f("ix_aeo_audits_lead_id"), table_name="aeo_audits")
    op.drop_index(op.f("ix_aeo_audits_brand_name"), table_name="aeo_audits")
    op.drop_table("aeo_audits")
    op.drop_index(op.f("ix_aeo_audit_leads_email"), table_name="aeo_audit_leads")
    op.drop_table("aeo_audit_leads")
