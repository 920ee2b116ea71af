"""Create user_progress table

Revision ID: 4c2d9e7a1b30
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4c2d9e7a1b30"
down_revision = None
branch_labels = None
depends_on = None

_DOCUMENT = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

_ARRAY_COLUMNS = (
    "achievements",
    "active_challenges",
    "completed_challenges",
    "active_quests",
    "completed_quests",
    "stats",
)


def upgrade() -> None:
    op.create_table(
        "user_progress",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("experience", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
        *(sa.Column(name, _DOCUMENT, nullable=True) for name in _ARRAY_COLUMNS),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_user_progress_experience_desc", "user_progress", ["experience"])


def downgrade() -> None:
    op.drop_index("ix_user_progress_experience_desc", table_name="user_progress")
    op.drop_table("user_progress")
