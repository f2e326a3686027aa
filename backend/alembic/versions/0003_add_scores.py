"""Add persisted term scores

Revision ID: 0003_add_scores
Revises: 0002_add_activity_points
Create Date: 2026-10-02
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_scores"
down_revision = "0002_add_activity_points"
branch_labels = None
depends_on = None


score_status_enum = sa.Enum("PROVISIONAL", "REVIEWED", "APPROVED", "FINAL", name="score_status")


def upgrade() -> None:
    op.create_table(
        "scores",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("student_id", sa.String(32), nullable=False),
        sa.Column("term_id", sa.String(32), nullable=False),
        sa.Column("total", sa.Numeric(6, 2), nullable=True),
        sa.Column("status", score_status_enum, nullable=False),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["term_id"], ["terms.id"], name="fk_scores_term_id_terms"),
        sa.PrimaryKeyConstraint("id", name="pk_scores"),
        sa.UniqueConstraint("student_id", "term_id", name="uq_scores_student_term"),
    )
    op.create_index("ix_scores_student_id", "scores", ["student_id"])
    op.create_index("ix_scores_term_id", "scores", ["term_id"])


def downgrade() -> None:
    op.drop_index("ix_scores_term_id", table_name="scores")
    op.drop_index("ix_scores_student_id", table_name="scores")
    op.drop_table("scores")
    score_status_enum.drop(op.get_bind(), checkfirst=True)
