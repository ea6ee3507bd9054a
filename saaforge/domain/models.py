from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JsonColumn = JSON().with_variant(JSONB(), "postgresql")
# SQLite only autoincrements INTEGER primary keys.
BigIntPk = BigInteger().with_variant(Integer(), "sqlite")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class UtcDateTime(TypeDecorator):
    # Normalize to aware UTC datetimes; SQLite drops tzinfo on round-trip.
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class Principal(Base):
    __tablename__ = "principals"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    # Store a salted PBKDF2 digest only; plaintext passwords never reach the database.
    password_hash: Mapped[str] = mapped_column(String)
    password_salt: Mapped[str] = mapped_column(String)
    # Persist the role as a plain string; only owner actions may change it.
    role: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    principal_id: Mapped[str] = mapped_column(String, ForeignKey("principals.id"), index=True)
    token_prefix: Mapped[str] = mapped_column(String)
    token_hash: Mapped[str] = mapped_column(String, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    last_seen_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)


class TeamProfile(Base):
    __tablename__ = "team_profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    # Legacy rows are keyed by email only; user_id is filled in when they are migrated.
    user_id: Mapped[str | None] = mapped_column(String, unique=True, index=True, nullable=True)
    email: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String, default="")
    title: Mapped[str] = mapped_column(String, default="")
    bio: Mapped[str] = mapped_column(Text, default="")
    profile_picture: Mapped[str | None] = mapped_column(String, nullable=True)
    skills: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    interests: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    achievements: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    portfolio_links: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    social_links: Mapped[dict[str, Any]] = mapped_column(JsonColumn, default=dict)
    # Per-field public visibility toggles for the team directory.
    visibility: Mapped[dict[str, bool]] = mapped_column(JsonColumn, default=dict)
    is_publicly_visible: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Team-only resources require an approved profile.
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class InviteCode(Base):
    __tablename__ = "invite_codes"

    code: Mapped[str] = mapped_column(String, primary_key=True)
    # Empty email means the code is not bound to a specific address.
    email: Mapped[str] = mapped_column(String, default="")
    ignore_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Links the code to a join request reviewed before the invite was issued.
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_by: Mapped[str | None] = mapped_column(String, nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_by: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime)


class JoinRequest(Base):
    __tablename__ = "join_requests"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String)
    email: Mapped[str] = mapped_column(String, index=True)
    skills: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    interests: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    achievements: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    portfolio_links: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    reason: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    tech_stack: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    # planned | active | completed
    status: Mapped[str] = mapped_column(String, default="planned")
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    case_study: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    demo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    github_url: Mapped[str | None] = mapped_column(String, nullable=True)
    assigned_members: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    # client | company
    project_type: Mapped[str] = mapped_column(String, default="company")
    # Shared with the client out of band; client-project feedback must quote it.
    client_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_by: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class ProjectApplication(Base):
    __tablename__ = "project_applications"
    __table_args__ = (Index("ix_project_applications_project_user", "project_id", "user_id"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String, ForeignKey("projects.id"), index=True)
    user_id: Mapped[str] = mapped_column(String)
    user_name: Mapped[str] = mapped_column(String, default="")
    user_email: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String)
    email: Mapped[str] = mapped_column(String)
    # automation | website | custom-software | consulting | other
    service_type: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text, default="")
    budget: Mapped[str] = mapped_column(String, default="")
    timeline: Mapped[str] = mapped_column(String, default="")
    status: Mapped[str] = mapped_column(String, default="new", index=True)
    converted_to_project_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)


class ProjectIdea(Base):
    __tablename__ = "project_ideas"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    project_id: Mapped[str | None] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text, default="")
    submitted_by: Mapped[str] = mapped_column(String, index=True)
    submitter_name: Mapped[str] = mapped_column(String, default="")
    submitter_email: Mapped[str] = mapped_column(String, default="")
    proposed_tech_stack: Mapped[list[str]] = mapped_column(JsonColumn, default=list)
    estimated_duration: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    reviewed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    project_id: Mapped[str | None] = mapped_column(String, nullable=True)
    project_name: Mapped[str | None] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text, default="")
    # todo | in-progress | completed
    status: Mapped[str] = mapped_column(String, default="todo", index=True)
    # low | medium | high
    priority: Mapped[str] = mapped_column(String, default="medium")
    assigned_to: Mapped[str] = mapped_column(String, index=True)
    assigned_to_name: Mapped[str] = mapped_column(String, default="")
    assigned_by: Mapped[str] = mapped_column(String)
    due_date: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    graded_by: Mapped[str | None] = mapped_column(String, nullable=True)
    graded_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class ProjectFeedback(Base):
    __tablename__ = "project_feedback"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String, ForeignKey("projects.id"), index=True)
    # Copied from the project at submission time.
    project_type: Mapped[str] = mapped_column(String)
    user_id: Mapped[str] = mapped_column(String)
    user_name: Mapped[str] = mapped_column(String, default="")
    user_email: Mapped[str] = mapped_column(String)
    # feedback | improvement
    type: Mapped[str] = mapped_column(String, default="feedback")
    feedback: Mapped[str] = mapped_column(Text)
    suggestions: Mapped[str] = mapped_column(Text, default="")
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    client_id: Mapped[str | None] = mapped_column(String, nullable=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    # Monotonic numeric id keeps pagination stable; rows are append-only.
    id: Mapped[int] = mapped_column(BigIntPk, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String, index=True)
    performed_by: Mapped[str] = mapped_column(String, index=True)
    target_id: Mapped[str | None] = mapped_column(String, nullable=True)
    target_type: Mapped[str | None] = mapped_column(String, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JsonColumn, default=dict)
    timestamp: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, index=True)


class UserNotification(Base):
    __tablename__ = "user_notifications"
    __table_args__ = (UniqueConstraint("user_id", "feed", name="uq_user_notifications_user_feed"),)

    id: Mapped[int] = mapped_column(BigIntPk, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    feed: Mapped[str] = mapped_column(String)
    # Read-up-to watermark; never moves backwards.
    last_viewed_at: Mapped[datetime] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)


class SiteContent(Base):
    __tablename__ = "site_content"

    # hero | about | vision | mission | services
    section: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    content: Mapped[str] = mapped_column(Text, default="")
    order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[str] = mapped_column(String)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=_utc_now, onupdate=_utc_now)
