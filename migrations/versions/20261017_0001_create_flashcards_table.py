"""Create the flashcards table with spaced-repetition state."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "flashcards",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("book_id", sa.String(length=64), nullable=True),
        sa.Column("topic", sa.String(length=255), server_default=sa.text("''"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column("interval_days", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_reviews", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("consecutive_correct", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("difficulty", sa.String(length=16), server_default=sa.text("'normal'"), nullable=False),
        sa.Column("mastered", sa.Boolean(), nullable=True),
        sa.Column("review_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("ease_factor >= 1.3", name="ck_flashcards_ease_factor_min"),
        sa.CheckConstraint(
            "difficulty IN ('easy', 'normal', 'hard', 'very_hard')",
            name="ck_flashcards_difficulty",
        ),
    )
    op.create_index("ix_flashcards_user_id", "flashcards", ("user_id",))
    op.create_index(
        "ix_flashcards_user_id_next_review_at",
        "flashcards",
        ("user_id", "next_review_at"),
    )


def downgrade() -> None:
    op.drop_index("ix_flashcards_user_id_next_review_at", table_name="flashcards")
    op.drop_index("ix_flashcards_user_id", table_name="flashcards")
    op.drop_table("flashcards")
