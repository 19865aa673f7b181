"""Initial migration: create tournament, umpire, court, match tables

Revision ID: 001_initial
Revises:
Create Date: 2025-05-20 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "umpire",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=False),
        sa.Column("license_no", sa.String(), nullable=True),
        sa.Column("contact", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["tournament_id"],
            ["tournament.id"],
        ),
    )
    op.create_index("ix_umpire_tournament_id", "umpire", ["tournament_id"])
    op.create_index("ix_umpire_license_no", "umpire", ["license_no"])

    op.create_table(
        "court",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["tournament_id"],
            ["tournament.id"],
        ),
    )
    op.create_index("ix_court_tournament_id", "court", ["tournament_id"])

    op.create_table(
        "match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=True),
        sa.Column("round", sa.String(), nullable=True),
        sa.Column("match_order", sa.Integer(), nullable=True),
        sa.Column("entry1_id", sa.Integer(), nullable=True),
        sa.Column("entry2_id", sa.Integer(), nullable=True),
        sa.Column("umpire_id", sa.Integer(), nullable=True),
        sa.Column("court_id", sa.Integer(), nullable=True),
        sa.Column("scheduled_time", sa.DateTime(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("match_code", sa.String(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("winner_entry_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["tournament_id"],
            ["tournament.id"],
        ),
        sa.ForeignKeyConstraint(
            ["umpire_id"],
            ["umpire.id"],
        ),
        sa.ForeignKeyConstraint(
            ["court_id"],
            ["court.id"],
        ),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])
    op.create_index("ix_match_umpire_id", "match", ["umpire_id"])
    op.create_index("ix_match_court_id", "match", ["court_id"])


def downgrade() -> None:
    op.drop_index("ix_match_court_id", table_name="match")
    op.drop_index("ix_match_umpire_id", table_name="match")
    op.drop_index("ix_match_tournament_id", table_name="match")
    op.drop_table("match")
    op.drop_index("ix_court_tournament_id", table_name="court")
    op.drop_table("court")
    op.drop_index("ix_umpire_license_no", table_name="umpire")
    op.drop_index("ix_umpire_tournament_id", table_name="umpire")
    op.drop_table("umpire")
    op.drop_table("tournament")
