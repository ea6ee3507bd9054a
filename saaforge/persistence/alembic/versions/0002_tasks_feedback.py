"""tasks and project feedback

Revision ID: 0002_tasks_feedback
Revises: 0001_init
Create Date: 2026-10-16 15:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_tasks_feedback"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.add_column("projects", sa.Column("client_id", sa.String(), nullable=True))

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("project_name", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("assigned_to", sa.String(), nullable=False),
        sa.Column("assigned_to_name", sa.String(), nullable=False, server_default=""),
        sa.Column("assigned_by", sa.String(), nullable=False),
        _ts("due_date", nullable=True),
        _ts("completed_at", nullable=True),
        sa.Column("grade", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("graded_by", sa.String(), nullable=True),
        _ts("graded_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assigned_to", "tasks", ["assigned_to"])

    op.create_table(
        "project_feedback",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("project_type", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_name", sa.String(), nullable=False, server_default=""),
        sa.Column("user_email", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="feedback"),
        sa.Column("feedback", sa.Text(), nullable=False),
        sa.Column("suggestions", sa.Text(), nullable=False, server_default=""),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("client_id", sa.String(), nullable=True),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_project_feedback_project_id", "project_feedback", ["project_id"])


def downgrade() -> None:
    op.drop_index("ix_project_feedback_project_id", table_name="project_feedback")
    op.drop_table("project_feedback")
    op.drop_index("ix_tasks_assigned_to", table_name="tasks")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_table("tasks")
    op.drop_column("projects", "client_id")
