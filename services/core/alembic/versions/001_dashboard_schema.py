"""Dashboard schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables read, observed or written by the dashboard:
- users
- dashboard_sessions
- research_cache
- message_generation_logs
- outreach_sequences
- sequence_prospects
- knowledge_base
- icps
- user_profiles
- business_profiles
- communication_preferences
- usage_tracking
- webhook_events
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    # Users and sessions
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "dashboard_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_dashboard_sessions_expires", "dashboard_sessions", ["expires_at"])

    # Prospects and messages
    op.create_table(
        "research_cache",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("profile_url", sa.String(512), nullable=True),
        sa.Column("profile_picture_url", sa.String(1024), nullable=True),
        sa.Column("research_data", sa.JSON, nullable=True),
        sa.Column("profile_type", sa.String(32), nullable=False, server_default="prospect"),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("idx_research_cache_user", "research_cache", ["user_id", "deleted_at"])

    op.create_table(
        "message_generation_logs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "research_cache_id",
            sa.BigInteger,
            sa.ForeignKey("research_cache.id"),
            nullable=True,
        ),
        sa.Column("message_status", sa.String(32), nullable=False),
        sa.Column("generated_message", sa.Text, nullable=True),
        sa.Column("edited_message", sa.Text, nullable=True),
        sa.Column("message_metadata", sa.JSON, nullable=True),
        sa.Column("sent_at", sa.DateTime, nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "idx_message_logs_user_created", "message_generation_logs", ["user_id", "created_at"]
    )
    op.create_index("idx_message_logs_cache", "message_generation_logs", ["research_cache_id"])

    op.create_table(
        "outreach_sequences",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("sequence_name", sa.String(255), nullable=False),
        sa.Column("sequence_type", sa.String(32), nullable=False, server_default="message"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("message_template", sa.Text, nullable=False, server_default=""),
        sa.Column("daily_limit", sa.Integer, nullable=False, server_default="50"),
        *_timestamps(),
    )

    op.create_table(
        "sequence_prospects",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "sequence_id",
            sa.BigInteger,
            sa.ForeignKey("outreach_sequences.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column(
            "message_log_id",
            sa.BigInteger,
            sa.ForeignKey("message_generation_logs.id"),
            nullable=True,
        ),
        sa.Column("linkedin_url", sa.String(512), nullable=False),
        sa.Column("linkedin_public_id", sa.String(255), nullable=False),
        sa.Column("prospect_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("scheduled_for", sa.DateTime, nullable=True),
        sa.Column("sent_at", sa.DateTime, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("sequence_id", "linkedin_public_id", name="uq_sequence_prospect"),
    )
    op.create_index(
        "idx_sequence_prospects_due", "sequence_prospects", ["status", "scheduled_for"]
    )

    # ICPs and knowledge base
    op.create_table(
        "knowledge_base",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("knowledge_type", sa.String(32), nullable=False, server_default="product"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("metadata", sa.JSON, nullable=True),
        sa.Column("workflow_status", sa.String(32), nullable=True),
        sa.Column("review_status", sa.String(32), nullable=True),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.Column("can_restore_until", sa.DateTime, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "icps",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("icp_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("job_titles", sa.JSON, nullable=True),
        sa.Column("pain_points", sa.JSON, nullable=True),
        sa.Column("value_drivers", sa.JSON, nullable=True),
        sa.Column("industry_focus", sa.JSON, nullable=True),
        sa.Column("company_characteristics", sa.Text, nullable=True),
        sa.Column(
            "product_link_id",
            sa.BigInteger,
            sa.ForeignKey("knowledge_base.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("workflow_status", sa.String(32), nullable=True),
        sa.Column("review_status", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.Column("can_restore_until", sa.DateTime, nullable=True),
        *_timestamps(),
    )

    # Profile settings
    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("job_title", sa.String(255), nullable=True),
        sa.Column("linkedin_connected", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("linkedin_url", sa.String(512), nullable=True),
        sa.Column("linkedin_public_identifier", sa.String(255), nullable=True),
        sa.Column("unipile_account_id", sa.String(128), nullable=True),
        sa.Column("linkedin_profile_data", sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_user_profiles_linkedin_public_identifier",
        "user_profiles",
        ["linkedin_public_identifier"],
    )

    op.create_table(
        "business_profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("industry", sa.String(255), nullable=True),
        sa.Column("website", sa.String(512), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "communication_preferences",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("tone", sa.String(64), nullable=True),
        sa.Column("style", sa.String(64), nullable=True),
        *_timestamps(updated=False),
    )

    # Usage and events
    op.create_table(
        "usage_tracking",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("messages_generated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("messages_sent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("messages_archived", sa.Integer, nullable=False, server_default="0"),
        sa.Column("research_performed", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "date", name="uq_usage_user_date"),
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(updated=False),
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("usage_tracking")
    op.drop_table("communication_preferences")
    op.drop_table("business_profiles")
    op.drop_index("ix_user_profiles_linkedin_public_identifier", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("icps")
    op.drop_table("knowledge_base")
    op.drop_index("idx_sequence_prospects_due", table_name="sequence_prospects")
    op.drop_table("sequence_prospects")
    op.drop_table("outreach_sequences")
    op.drop_index("idx_message_logs_cache", table_name="message_generation_logs")
    op.drop_index("idx_message_logs_user_created", table_name="message_generation_logs")
    op.drop_table("message_generation_logs")
    op.drop_index("idx_research_cache_user", table_name="research_cache")
    op.drop_table("research_cache")
    op.drop_table("dashboard_sessions")
    op.drop_table("users")
