"""Role-based navigation guard.

``authorize`` is a pure function: it reads nothing but its arguments and
returns a decision. The caller (router, API dependency) performs the single
redirect, so the guard carries no "already redirected" state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from saaforge.core.config import get_settings


class Role(str, Enum):
    OWNER = "owner"
    TEAM = "team"
    USER = "user"


def normalize_role(role: str) -> Role:
    # Enforce a stable, lowercased role vocabulary for guard checks.
    try:
        return Role(role.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported role: {role}") from exc


@dataclass(frozen=True)
class PrincipalContext:
    # Request-scoped view of the signed-in identity; built fresh per request.
    principal_id: str
    email: str
    role: Role
    is_approved: bool = False

    @property
    def is_owner(self) -> bool:
        return self.role is Role.OWNER


class Access(str, Enum):
    ALLOW = "allow"
    ALLOW_IF_APPROVED = "allow_if_approved"
    DENY = "deny"


# (principal role, required role) -> access. Pairs not listed are denied.
ACCESS_TABLE: dict[tuple[Role, Role], Access] = {
    (Role.OWNER, Role.OWNER): Access.ALLOW,
    (Role.OWNER, Role.TEAM): Access.ALLOW,
    (Role.TEAM, Role.TEAM): Access.ALLOW_IF_APPROVED,
    (Role.USER, Role.USER): Access.ALLOW,
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    redirect_to: str | None = None

    def redirect_for(self, current_path: str | None) -> str | None:
        # Never redirect to the page the caller is already on.
        if self.allowed or self.redirect_to is None:
            return None
        if current_path is not None and current_path == self.redirect_to:
            return None
        return self.redirect_to


ALLOW = Decision(allowed=True)


def redirect(path: str) -> Decision:
    return Decision(allowed=False, redirect_to=path)


def authorize(principal: PrincipalContext | None, required_role: Role | None) -> Decision:
    settings = get_settings()
    if principal is None:
        return redirect(settings.login_redirect_path)
    if required_role is None:
        return ALLOW
    access = ACCESS_TABLE.get((principal.role, required_role), Access.DENY)
    if access is Access.ALLOW:
        return ALLOW
    if access is Access.ALLOW_IF_APPROVED and principal.is_approved:
        return ALLOW
    return redirect(settings.home_redirect_path)
