"""Create the study sessions history table."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0002"
down_revision: Union[str, None] = "20261017_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "study_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("book_id", sa.String(length=64), nullable=True),
        sa.Column("mode", sa.String(length=16), server_default=sa.text("'scored'"), nullable=False),
        sa.Column("total_cards", sa.Integer(), nullable=False),
        sa.Column("correct_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("incorrect_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("skipped_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("score_percentage", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("time_spent_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "score_percentage >= 0 AND score_percentage <= 100",
            name="ck_study_sessions_score_percentage",
        ),
    )
    op.create_index(
        "ix_study_sessions_user_id_completed_at",
        "study_sessions",
        ("user_id", "completed_at"),
    )


def downgrade() -> None:
    op.drop_index("ix_study_sessions_user_id_completed_at", table_name="study_sessions")
    op.drop_table("study_sessions")
