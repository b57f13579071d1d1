"""Add authentication_tokens table for password reset, account setup and email verification.

Revision ID: 20251019200000
Revises: 20251019100000
Create Date: 2025-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20251019200000"
down_revision: Union[str, None] = "20251019100000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "authentication_tokens",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_authentication_tokens_token"),
        "authentication_tokens",
        ["token"],
        unique=True,
    )
    op.create_index(
        op.f("ix_authentication_tokens_user_id"), "authentication_tokens", ["user_id"]
    )
    op.create_index(
        op.f("ix_authentication_tokens_purpose"), "authentication_tokens", ["purpose"]
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_authentication_tokens_purpose"), table_name="authentication_tokens")
    op.drop_index(op.f("ix_authentication_tokens_user_id"), table_name="authentication_tokens")
    op.drop_index(op.f("ix_authentication_tokens_token"), table_name="authentication_tokens")
    op.drop_table("authentication_tokens")
