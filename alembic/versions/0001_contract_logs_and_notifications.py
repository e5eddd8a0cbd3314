"""contract logs (state + version), hash-chained action entries, notifications

Revision ID: 0001_contract_logs_and_notifications
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_contract_logs_and_notifications"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "contract_logs",
        sa.Column("contract_address", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("state_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "contract_action_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("contract_address", sa.String(length=128), nullable=False),

        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("tx_hash", sa.String(length=128), nullable=False),
        sa.Column("account", sa.String(length=128), nullable=False),

        sa.Column("prev_hash", sa.String(length=128), nullable=False),
        sa.Column("entry_hash", sa.String(length=128), nullable=False),

        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("payload_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),

        sa.ForeignKeyConstraint(["contract_address"], ["contract_logs.contract_address"], ondelete="CASCADE"),
        sa.UniqueConstraint("contract_address", "seq", name="uq_contract_action_seq"),
    )
    op.create_index("ix_contract_action_account", "contract_action_entries", ["account"])
    op.create_index("ix_contract_action_action", "contract_action_entries", ["action"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("executor_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("extra_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_notifications_user", "notifications", ["user_id"])
    op.create_index("ix_notifications_created", "notifications", ["created_at"])


def downgrade():
    op.drop_index("ix_notifications_created", table_name="notifications")
    op.drop_index("ix_notifications_user", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_contract_action_action", table_name="contract_action_entries")
    op.drop_index("ix_contract_action_account", table_name="contract_action_entries")
    op.drop_table("contract_action_entries")

    op.drop_table("contract_logs")
