"""Add users_role table: per-user, per-company role assignments.

Until this revision is applied, ROLE_STORE_MODE=auto keeps the service on the
legacy users.role column.

Revision ID: 20251019100000
Revises: 20251019000000
Create Date: 2025-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20251019100000"
down_revision: Union[str, None] = "20251019000000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users_role",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN (0, 1, 2)", name="ck_users_role_elevated"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_role_user_id"), "users_role", ["user_id"])
    op.create_index(
        "ix_users_role_user_company_role",
        "users_role",
        ["user_id", "company_id", "role"],
    )


def downgrade() -> None:
    op.drop_index("ix_users_role_user_company_role", table_name="users_role")
    op.drop_index(op.f("ix_users_role_user_id"), table_name="users_role")
    op.drop_table("users_role")
