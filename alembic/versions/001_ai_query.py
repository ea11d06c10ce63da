"""AI query cache and chat history.

Revision ID: 001_ai_query
Revises:
Create Date: 2026-10-01 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_ai_query"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ai_query_cache",
        sa.Column("query_hash", sa.String(64), primary_key=True),
        sa.Column("factory_id", sa.String(255), nullable=True),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("sql_query", sa.Text(), nullable=False),
        sa.Column("result_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hit_count", sa.Integer(), server_default="0", nullable=False),
        if_not_exists=True,
    )
    op.create_index("ix_ai_query_cache_expires_at", "ai_query_cache", ["expires_at"], unique=False, if_not_exists=True)
    op.create_index("ix_ai_query_cache_factory_id", "ai_query_cache", ["factory_id"], unique=False, if_not_exists=True)

    op.create_table(
        "ai_chat_history",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("message_type", sa.String(16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("message_type IN ('user', 'ai')", name="ck_ai_chat_history_message_type"),
        if_not_exists=True,
    )
    op.create_index(
        "ix_ai_chat_history_session_user_created",
        "ai_chat_history",
        ["session_id", "user_id", "created_at"],
        unique=False,
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_index("ix_ai_chat_history_session_user_created", table_name="ai_chat_history")
    op.drop_table("ai_chat_history")
    op.drop_index("ix_ai_query_cache_factory_id", table_name="ai_query_cache")
    op.drop_index("ix_ai_query_cache_expires_at", table_name="ai_query_cache")
    op.drop_table("ai_query_cache")
