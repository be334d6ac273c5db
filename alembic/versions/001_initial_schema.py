"""Initial schema — users, connections and exclusions.

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _pair_columns() -> list:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_a_id",
            sa.String,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "user_b_id",
            sa.String,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String, primary_key=True, comment="Auth provider uid"),
        sa.Column("email", sa.String, unique=True, index=True, nullable=False),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("age", sa.Integer, nullable=True),
        sa.Column("age_pref_min", sa.Integer, nullable=True),
        sa.Column("age_pref_max", sa.Integer, nullable=True),
        sa.Column(
            "interests",
            postgresql.JSONB,
            nullable=True,
            comment="Array of interest strings",
        ),
        sa.Column(
            "availability",
            postgresql.JSONB,
            nullable=True,
            comment="168 hourly slots, Monday 00:00 first",
        ),
        sa.Column("occupation", sa.String, nullable=True),
        sa.Column("occupation_description", sa.Text, nullable=True),
        sa.Column(
            "work_date_ratio",
            sa.Float,
            nullable=True,
            comment="0 = task-focused, 100 = social",
        ),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("max_distance_km", sa.Float, nullable=True),
        sa.Column("work_chat_ratio", sa.Float, nullable=True),
        sa.Column("interaction_level", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_active",
            sa.Boolean,
            server_default="true",
            nullable=False,
        ),
    )

    # ── 2. connections ──────────────────────────────────────────────
    op.create_table(
        "connections",
        *_pair_columns(),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_connection_pair"),
    )

    # ── 3. exclusions ───────────────────────────────────────────────
    op.create_table(
        "exclusions",
        *_pair_columns(),
        sa.Column(
            "level",
            sa.Integer,
            nullable=False,
            server_default="1",
            comment="Escalation level; window = 2^level days",
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_exclusion_pair"),
    )
    op.create_index("ix_exclusions_expires_at", "exclusions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_exclusions_expires_at", table_name="exclusions")
    op.drop_table("exclusions")
    op.drop_table("connections")
    op.drop_table("users")
