from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from saaforge.domain.models import AuditLog
from saaforge.persistence.db import SessionLocal


logger = logging.getLogger(__name__)

# Stable action vocabulary for privileged state changes.
AUDIT_ACTIONS = frozenset(
    {
        "user.created",
        "user.updated",
        "user.deleted",
        "team.approved",
        "team.rejected",
        "project.created",
        "project.updated",
        "project.deleted",
        "order.reviewed",
        "idea.approved",
        "idea.rejected",
        "invite.created",
        "content.updated",
        "task.created",
        "task.updated",
        "task.deleted",
        "task.graded",
        "feedback.approved",
        "feedback.deleted",
    }
)

_SENSITIVE_KEY_PATTERNS = ["password", "token", "secret", "authorization", "salt"]
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_details(value: Any) -> Any:
    # Recursively scrub credential-like fields while preserving structure.
    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_details(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_details(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


async def record_audit(
    *,
    action: str,
    performed_by: str,
    details: dict[str, Any] | None = None,
    target_id: str | None = None,
    target_type: str | None = None,
    timestamp: datetime | None = None,
) -> bool:
    """Append one audit entry, best effort.

    The entry is written in its own session, after the caller has committed
    its primary change, so a failed audit write can never roll back the
    caller's work. Failures are logged and reported through the return value.
    """
    if action not in AUDIT_ACTIONS:
        logger.warning("audit_action_unknown action=%s", action)
    entry = AuditLog(
        action=action,
        performed_by=performed_by,
        target_id=target_id,
        target_type=target_type,
        details=sanitize_details(details or {}),
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    async with SessionLocal() as session:
        try:
            session.add(entry)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("audit_log_write_failed action=%s target_id=%s", action, target_id, exc_info=exc)
            return False
    return True
