"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "principals",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("password_salt", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_principals_email", "principals", ["email"], unique=True)

    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("principal_id", sa.String(), sa.ForeignKey("principals.id"), nullable=False),
        sa.Column("token_prefix", sa.String(), nullable=False),
        sa.Column("token_hash", sa.String(), nullable=False),
        _ts("created_at"),
        _ts("last_seen_at", nullable=True),
        _ts("expires_at", nullable=True),
        _ts("revoked_at", nullable=True),
    )
    op.create_index("ix_auth_sessions_principal_id", "auth_sessions", ["principal_id"])
    op.create_index("ix_auth_sessions_token_hash", "auth_sessions", ["token_hash"], unique=True)

    op.create_table(
        "team_profiles",
        sa.Column("id", sa.String(), primary_key=True),
        # Null for legacy email-keyed rows until they are adopted.
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("title", sa.String(), nullable=False, server_default=""),
        sa.Column("bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("profile_picture", sa.String(), nullable=True),
        sa.Column("skills", _json(), nullable=False),
        sa.Column("interests", _json(), nullable=False),
        sa.Column("achievements", _json(), nullable=False),
        sa.Column("portfolio_links", _json(), nullable=False),
        sa.Column("social_links", _json(), nullable=False),
        sa.Column("visibility", _json(), nullable=False),
        sa.Column("is_publicly_visible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_team_profiles_user_id", "team_profiles", ["user_id"], unique=True)
    op.create_index("ix_team_profiles_email", "team_profiles", ["email"])

    op.create_table(
        "invite_codes",
        sa.Column("code", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False, server_default=""),
        sa.Column("ignore_email", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("request_id", sa.String(), nullable=True),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_by", sa.String(), nullable=True),
        _ts("used_at", nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        _ts("created_at"),
        _ts("expires_at"),
    )

    op.create_table(
        "join_requests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("skills", _json(), nullable=False),
        sa.Column("interests", _json(), nullable=False),
        sa.Column("achievements", _json(), nullable=False),
        sa.Column("portfolio_links", _json(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        _ts("reviewed_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_join_requests_email", "join_requests", ["email"])
    op.create_index("ix_join_requests_status", "join_requests", ["status"])

    op.create_table(
        "projects",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("tech_stack", _json(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="planned"),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("case_study", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("demo_url", sa.String(), nullable=True),
        sa.Column("github_url", sa.String(), nullable=True),
        sa.Column("assigned_members", _json(), nullable=False),
        sa.Column("project_type", sa.String(), nullable=False, server_default="company"),
        sa.Column("created_by", sa.String(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "project_applications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("user_name", sa.String(), nullable=False, server_default=""),
        sa.Column("user_email", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        _ts("reviewed_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_project_applications_project_id", "project_applications", ["project_id"])
    op.create_index("ix_project_applications_status", "project_applications", ["status"])
    op.create_index("ix_project_applications_project_user", "project_applications", ["project_id", "user_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("service_type", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("budget", sa.String(), nullable=False, server_default=""),
        sa.Column("timeline", sa.String(), nullable=False, server_default=""),
        sa.Column("status", sa.String(), nullable=False, server_default="new"),
        sa.Column("converted_to_project_id", sa.String(), nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        _ts("reviewed_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "project_ideas",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("submitted_by", sa.String(), nullable=False),
        sa.Column("submitter_name", sa.String(), nullable=False, server_default=""),
        sa.Column("submitter_email", sa.String(), nullable=False, server_default=""),
        sa.Column("proposed_tech_stack", _json(), nullable=False),
        sa.Column("estimated_duration", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        _ts("reviewed_at", nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_project_ideas_submitted_by", "project_ideas", ["submitted_by"])
    op.create_index("ix_project_ideas_status", "project_ideas", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("performed_by", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=True),
        sa.Column("target_type", sa.String(), nullable=True),
        sa.Column("details", _json(), nullable=False),
        _ts("timestamp"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_performed_by", "audit_logs", ["performed_by"])
    op.create_index("ix_audit_logs_timestamp", "audit_logs", ["timestamp"])

    op.create_table(
        "user_notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("feed", sa.String(), nullable=False),
        _ts("last_viewed_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "feed", name="uq_user_notifications_user_feed"),
    )
    op.create_index("ix_user_notifications_user_id", "user_notifications", ["user_id"])

    op.create_table(
        "site_content",
        sa.Column("section", sa.String(), primary_key=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=False),
        _ts("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("site_content")
    op.drop_index("ix_user_notifications_user_id", table_name="user_notifications")
    op.drop_table("user_notifications")
    op.drop_index("ix_audit_logs_timestamp", table_name="audit_logs")
    op.drop_index("ix_audit_logs_performed_by", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_project_ideas_status", table_name="project_ideas")
    op.drop_index("ix_project_ideas_submitted_by", table_name="project_ideas")
    op.drop_table("project_ideas")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_project_applications_project_user", table_name="project_applications")
    op.drop_index("ix_project_applications_status", table_name="project_applications")
    op.drop_index("ix_project_applications_project_id", table_name="project_applications")
    op.drop_table("project_applications")
    op.drop_table("projects")
    op.drop_index("ix_join_requests_status", table_name="join_requests")
    op.drop_index("ix_join_requests_email", table_name="join_requests")
    op.drop_table("join_requests")
    op.drop_table("invite_codes")
    op.drop_index("ix_team_profiles_email", table_name="team_profiles")
    op.drop_index("ix_team_profiles_user_id", table_name="team_profiles")
    op.drop_table("team_profiles")
    op.drop_index("ix_auth_sessions_token_hash", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_principal_id", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_index("ix_principals_email", table_name="principals")
    op.drop_table("principals")
