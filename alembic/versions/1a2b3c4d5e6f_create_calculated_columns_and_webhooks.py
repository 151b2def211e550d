"""create calculated columns and webhooks

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "1a2b3c4d5e6f"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # gen_random_uuid() is built in from PostgreSQL 13; pgcrypto covers older servers
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # calculated_columns: per-owner formula definitions
    op.create_table(
        "calculated_columns",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("column_name", sa.String(100), nullable=False),
        sa.Column("formula", sa.Text(), nullable=False),
        sa.Column(
            "formula_type", sa.String(20), nullable=False, server_default="calculation"
        ),
        sa.Column("result_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("cache_duration", sa.Integer()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "owner_id", "column_name", name="uq_calculated_columns_owner_name"
        ),
        sa.CheckConstraint(
            "formula_type IN ('calculation', 'ai_enrichment')", name="ck_formula_type"
        ),
        sa.CheckConstraint(
            "result_type IN ('text', 'number', 'boolean')", name="ck_result_type"
        ),
        sa.CheckConstraint(
            "cache_duration IS NULL OR cache_duration >= 0",
            name="ck_cache_duration_non_negative",
        ),
    )
    op.create_index(
        "idx_calculated_columns_owner_active",
        "calculated_columns",
        ["owner_id", "is_active"],
    )

    # calculated_results: one cached value per (column, lead)
    op.create_table(
        "calculated_results",
        sa.Column(
            "column_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("calculated_columns.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("lead_id", sa.String(64), primary_key=True),
        sa.Column("result_value", postgresql.JSONB()),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_calculated_results_lead", "calculated_results", ["lead_id"])
    op.create_index(
        "idx_calculated_results_expires_at", "calculated_results", ["expires_at"]
    )

    # webhooks: outbound subscriptions
    op.create_table(
        "webhooks",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("secret_key", sa.String(128), nullable=False),
        sa.Column(
            "events",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column(
            "headers",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "transform_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("transform_script", sa.Text()),
        sa.Column(
            "retry_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("retry_delay", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("timeout", sa.Integer(), nullable=False, server_default=sa.text("30000")),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('active', 'inactive', 'failed')", name="ck_webhook_status"
        ),
        sa.CheckConstraint("max_retries BETWEEN 0 AND 10", name="ck_max_retries_range"),
        sa.CheckConstraint("retry_delay > 0", name="ck_retry_delay_positive"),
        sa.CheckConstraint("timeout BETWEEN 1000 AND 120000", name="ck_timeout_range"),
    )
    op.create_index(
        "idx_webhooks_created_by_status", "webhooks", ["created_by", "status"]
    )
    op.create_index(
        "idx_webhooks_events", "webhooks", ["events"], postgresql_using="gin"
    )

    # webhook_deliveries: attempt history and retry schedule
    op.create_table(
        "webhook_deliveries",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "webhook_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("webhooks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("transformed_payload", postgresql.JSONB()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("response_status", sa.Integer()),
        sa.Column("response_body", sa.Text()),
        sa.Column("error_message", sa.Text()),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("next_retry_at", sa.DateTime(timezone=True)),
        sa.Column("delivered_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'success', 'failed', 'retrying')",
            name="ck_delivery_status",
        ),
        sa.CheckConstraint("retry_count >= 0", name="ck_retry_count_non_negative"),
    )
    op.create_index(
        "idx_webhook_deliveries_status_next_retry",
        "webhook_deliveries",
        ["status", "next_retry_at"],
    )
    op.create_index(
        "idx_webhook_deliveries_webhook_created",
        "webhook_deliveries",
        ["webhook_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_webhook_deliveries_webhook_created", table_name="webhook_deliveries")
    op.drop_index("idx_webhook_deliveries_status_next_retry", table_name="webhook_deliveries")
    op.drop_table("webhook_deliveries")
    op.drop_index("idx_webhooks_events", table_name="webhooks")
    op.drop_index("idx_webhooks_created_by_status", table_name="webhooks")
    op.drop_table("webhooks")
    op.drop_index("idx_calculated_results_expires_at", table_name="calculated_results")
    op.drop_index("idx_calculated_results_lead", table_name="calculated_results")
    op.drop_table("calculated_results")
    op.drop_index("idx_calculated_columns_owner_active", table_name="calculated_columns")
    op.drop_table("calculated_columns")
