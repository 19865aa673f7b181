"""Add match lifecycle columns and umpire/court idle tracking

Revision ID: 002_idle_tracking
Revises: 001_initial
Create Date: 2025-06-01 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002_idle_tracking"
down_revision = "001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Match lifecycle
    op.add_column("match", sa.Column("actual_start_time", sa.DateTime(), nullable=True))
    op.add_column("match", sa.Column("awaiting_result", sa.Boolean(), nullable=False, server_default=sa.false()))
    op.add_column("match", sa.Column("code_valid", sa.Boolean(), nullable=False, server_default=sa.true()))
    op.add_column("match", sa.Column("entry1_score", sa.Integer(), nullable=True))
    op.add_column("match", sa.Column("entry2_score", sa.Integer(), nullable=True))
    op.create_index("ix_match_actual_start_time", "match", ["actual_start_time"])
    op.create_index("ix_match_awaiting_result", "match", ["awaiting_result"])

    # Idle tracking; last_assigned_match_id has no FK (match already references the resource)
    for table in ("umpire", "court"):
        op.add_column(table, sa.Column("is_idle", sa.Boolean(), nullable=False, server_default=sa.true()))
        op.add_column(table, sa.Column("last_assigned_start_time", sa.DateTime(), nullable=True))
        op.add_column(table, sa.Column("last_assigned_match_id", sa.Integer(), nullable=True))
        op.create_index(f"ix_{table}_is_idle", table, ["is_idle"])
        op.create_index(f"ix_{table}_last_assigned_match_id", table, ["last_assigned_match_id"])


def downgrade() -> None:
    for table in ("court", "umpire"):
        op.drop_index(f"ix_{table}_last_assigned_match_id", table_name=table)
        op.drop_index(f"ix_{table}_is_idle", table_name=table)
        op.drop_column(table, "last_assigned_match_id")
        op.drop_column(table, "last_assigned_start_time")
        op.drop_column(table, "is_idle")

    op.drop_index("ix_match_awaiting_result", table_name="match")
    op.drop_index("ix_match_actual_start_time", table_name="match")
    op.drop_column("match", "entry2_score")
    op.drop_column("match", "entry1_score")
    op.drop_column("match", "code_valid")
    op.drop_column("match", "awaiting_result")
    op.drop_column("match", "actual_start_time")
