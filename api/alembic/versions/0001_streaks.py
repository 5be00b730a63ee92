"""Create streak tables.

Revision ID: 0001_streaks
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_streaks"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_streaks",
        sa.Column("id", sa.String(length=320), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=64), nullable=False),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("longest_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_activity_date", sa.String(length=10), nullable=True),
        sa.Column("freeze_days", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "freeze_days_used", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("streak_start_date", sa.String(length=10), nullable=True),
        sa.Column(
            "last_freeze_earned_at", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column("last_freeze_used_date", sa.String(length=10), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("current_streak >= 0", name="ck_user_streaks_current"),
        sa.CheckConstraint(
            "longest_streak >= current_streak", name="ck_user_streaks_longest"
        ),
        sa.CheckConstraint("freeze_days >= 0", name="ck_user_streaks_freeze_days"),
        sa.CheckConstraint(
            "freeze_days_used >= 0", name="ck_user_streaks_freeze_days_used"
        ),
    )
    op.create_index("ix_user_streaks_user", "user_streaks", ["user_id"])

    op.create_table(
        "streak_activities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=64), nullable=False),
        sa.Column("activity_date", sa.String(length=10), nullable=False),
        sa.Column("activity_type", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_streak_activities_user_date",
        "streak_activities",
        ["user_id", "activity_date"],
    )
    op.create_index(
        "ix_streak_activities_created", "streak_activities", ["created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_streak_activities_created", table_name="streak_activities")
    op.drop_index("ix_streak_activities_user_date", table_name="streak_activities")
    op.drop_table("streak_activities")
    op.drop_index("ix_user_streaks_user", table_name="user_streaks")
    op.drop_table("user_streaks")
