from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import secrets
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saaforge.core.config import get_settings
from saaforge.core.errors import (
    AlreadyUsed,
    Conflict,
    EmailMismatch,
    Expired,
    Forbidden,
    NotFound,
    TransientStoreFailure,
    ValidationFailed,
)
from saaforge.domain.models import InviteCode, JoinRequest, Principal, TeamProfile
from saaforge.persistence.repos import invites as invites_repo
from saaforge.persistence.repos import principals as principals_repo
from saaforge.services.access import PrincipalContext, Role
from saaforge.services.audit import record_audit
from saaforge.services.auth.passwords import hash_password


logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Initial visibility for profiles created at registration; members widen it later.
DEFAULT_VISIBILITY: dict[str, bool] = {
    "name": True,
    "title": True,
    "bio": True,
    "skills": True,
    "interests": False,
    "achievements": False,
    "portfolio_links": False,
    "social_links": False,
}


@dataclass(frozen=True)
class RedeemResult:
    principal_id: str
    email: str
    role: Role
    is_approved: bool
    code: str


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_invite_code(length: int | None = None) -> str:
    size = length or get_settings().invite_code_length
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(size))


def check_invite(invite: InviteCode | None, *, email: str, now: datetime) -> InviteCode:
    # Validation order is fixed: NotFound, Expired, AlreadyUsed, EmailMismatch.
    if invite is None:
        raise NotFound("Invalid invite code")
    if now > invite.expires_at:
        raise Expired("Invite code has expired", code=invite.code)
    if invite.is_used:
        raise AlreadyUsed("Invite code has already been used", code=invite.code)
    bound_email = (invite.email or "").strip().lower()
    if bound_email and not invite.ignore_email and bound_email != email.strip().lower():
        raise EmailMismatch("Invite code does not match email", code=invite.code)
    return invite


async def _linked_request_approved(session: AsyncSession, request_id: str | None) -> bool:
    if not request_id:
        return False
    result = await session.execute(select(JoinRequest.status).where(JoinRequest.id == request_id))
    return result.scalar_one_or_none() == "approved"


async def create_invite(
    session: AsyncSession,
    *,
    actor: PrincipalContext,
    email: str | None = None,
    request_id: str | None = None,
    ignore_email: bool = False,
    ttl_hours: int | None = None,
    code: str | None = None,
) -> InviteCode:
    if not actor.is_owner:
        raise Forbidden("Only owners can create invite codes")
    settings = get_settings()
    now = _utc_now()
    try:
        if request_id is not None:
            request = await session.get(JoinRequest, request_id)
            if request is None:
                raise NotFound("Join request not found", request_id=request_id)
            # A linked request supplies the bound email when none is given.
            email = email or request.email
        invite = InviteCode(
            code=code or generate_invite_code(),
            email=(email or "").strip().lower(),
            ignore_email=ignore_email,
            request_id=request_id,
            is_used=False,
            created_by=actor.principal_id,
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours or settings.invite_code_ttl_hours),
        )
        session.add(invite)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Invite code already exists") from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Invite code could not be created") from exc

    await record_audit(
        action="invite.created",
        performed_by=actor.principal_id,
        target_id=invite.code,
        target_type="invite_code",
        details={"email": invite.email, "request_id": request_id, "ignore_email": ignore_email},
    )
    return invite


async def lookup_invite(session: AsyncSession, *, code: str, now: datetime | None = None) -> InviteCode:
    # Pre-check for the onboarding screen; never consumes the code.
    try:
        invite = await invites_repo.get_invite(session, code)
    except SQLAlchemyError as exc:
        raise TransientStoreFailure("Invite lookup unavailable") from exc
    if invite is None:
        raise NotFound("Invalid invite code")
    current = now or _utc_now()
    if current > invite.expires_at:
        raise Expired("Invite code has expired", code=invite.code)
    if invite.is_used:
        raise AlreadyUsed("Invite code has already been used", code=invite.code)
    return invite


async def redeem(
    session: AsyncSession,
    *,
    code: str,
    email: str,
    password: str,
    now: datetime | None = None,
) -> RedeemResult:
    """Consume an invite code and create the team principal it gates.

    The claim is a compare-and-set on ``is_used`` and it runs before anything
    else is written, so of two racing registrations the loser always sees
    ``AlreadyUsed``. The principal id is chosen up front to stamp ``used_by``;
    a later failure rolls the claim back with the rest of the transaction.
    """
    settings = get_settings()
    current = now or _utc_now()
    normalized_email = principals_repo.normalize_email(email)
    if len(password) < settings.password_min_length:
        raise ValidationFailed(
            f"Password must be at least {settings.password_min_length} characters",
            min_length=settings.password_min_length,
        )
    principal_id = uuid4().hex

    try:
        invite = await invites_repo.get_invite(session, code)
        check_invite(invite, email=normalized_email, now=current)
        request_id = invite.request_id

        if not await invites_repo.claim_invite(session, code=code, used_by=principal_id, used_at=current):
            await session.rollback()
            raise AlreadyUsed("Invite code has already been used", code=code)

        if await principals_repo.get_by_email(session, normalized_email) is not None:
            await session.rollback()
            raise Conflict("Email is already registered", email=normalized_email)
        is_approved = await _linked_request_approved(session, request_id)

        password_hash, password_salt = hash_password(password)
        session.add(
            Principal(
                id=principal_id,
                email=normalized_email,
                password_hash=password_hash,
                password_salt=password_salt,
                role=Role.TEAM.value,
                created_at=current,
                updated_at=current,
            )
        )
        session.add(
            TeamProfile(
                user_id=principal_id,
                email=normalized_email,
                visibility=dict(DEFAULT_VISIBILITY),
                is_publicly_visible=False,
                is_approved=is_approved,
                created_at=current,
                updated_at=current,
            )
        )
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Email is already registered", email=normalized_email) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise TransientStoreFailure("Registration could not be completed") from exc

    logger.info("invite_redeemed code=%s principal_id=%s approved=%s", code, principal_id, is_approved)
    await record_audit(
        action="user.created",
        performed_by=principal_id,
        target_id=principal_id,
        target_type="principal",
        details={"email": normalized_email, "invite_code": code, "is_approved": is_approved},
    )
    return RedeemResult(
        principal_id=principal_id,
        email=normalized_email,
        role=Role.TEAM,
        is_approved=is_approved,
        code=code,
    )
