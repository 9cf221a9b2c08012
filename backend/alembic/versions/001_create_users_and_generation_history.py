"""Create users and generation_history tables

Revision ID: 001
Revises: None
Create Date: 2025-07-10 23:04:33.000000+00:00

What:  Initial schema: the users table (premium flag for the quota ledger)
       and the append-only generation_history table.
Why:   generation_history is both the history list and the usage ledger;
       daily quota counts are computed from it.

Rollback: downgrade() drops both tables (all history is lost).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), nullable=False, comment="Id issued by the identity provider"),
        sa.Column("email", sa.String(320), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "is_premium",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
            comment="Premium users bypass the daily feature quotas",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )

    op.create_table(
        "generation_history",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column(
            "feature",
            sa.String(64),
            nullable=False,
            comment="article-generator | image-generator | background-remover | resume-analyzer",
        ),
        sa.Column("input", postgresql.JSONB(), nullable=False),
        sa.Column("output", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_generation_history"),
        sa.CheckConstraint(
            "feature IN ('article-generator', 'image-generator', "
            "'background-remover', 'resume-analyzer')",
            name="ck_generation_history_feature",
        ),
    )

    # Quota count: rows for (user, feature) since 00:00 UTC
    op.create_index(
        "idx_generation_user_feature_created",
        "generation_history",
        ["user_id", "feature", "created_at"],
    )
    # History page: rows for user, newest first
    op.create_index(
        "idx_generation_user_created",
        "generation_history",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_generation_user_created", table_name="generation_history")
    op.drop_index("idx_generation_user_feature_created", table_name="generation_history")
    op.drop_table("generation_history")
    op.drop_table("users")
