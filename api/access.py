"""
Access decisions for books and user profiles.

All checks are pure functions of the requester, the resource owner and the
requested action. Route handlers call these instead of comparing ids inline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """User role enumeration."""
    USER = "user"
    ADMIN = "admin"


class Action(str, Enum):
    """Actions a requester may perform on a book."""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


@dataclass(frozen=True)
class Identity:
    """The authenticated requester as seen by access checks."""
    id: str
    role: Role = Role.USER


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AccessDecision(allowed=True)

_DENY_REASONS = {
    Action.WRITE: "Access denied. You can only update your own books.",
    Action.DELETE: "Access denied. You can only delete your own books.",
}


def is_admin(requester: Optional[Identity]) -> bool:
    """Return True when the requester holds the admin role."""
    if requester is None:
        return False
    try:
        return Role(requester.role) == Role.ADMIN
    except ValueError:
        return False


def decide(requester: Optional[Identity], owner_id: Optional[str], action: Action) -> AccessDecision:
    """
    Decide whether a requester may perform an action on a book.

    Reads are public. Writes and deletes are allowed for the owner or an
    admin and denied for everyone else, including anonymous requesters.
    """
    if action == Action.READ:
        return ALLOW

    reason = _DENY_REASONS.get(action, "Access denied.")
    if requester is None:
        return AccessDecision(allowed=False, reason="Access denied. Authentication required.")

    if is_admin(requester):
        return ALLOW
    if owner_id is not None and str(requester.id) == str(owner_id):
        return ALLOW
    return AccessDecision(allowed=False, reason=reason)


def can_write(requester: Optional[Identity], owner_id: Optional[str]) -> AccessDecision:
    return decide(requester, owner_id, Action.WRITE)


def can_delete(requester: Optional[Identity], owner_id: Optional[str]) -> AccessDecision:
    return decide(requester, owner_id, Action.DELETE)


def can_update_profile(requester: Optional[Identity], target_user_id: Optional[str]) -> AccessDecision:
    """Profiles are self-service only; admins get no cross-user path."""
    if requester is None or target_user_id is None:
        return AccessDecision(allowed=False, reason="Access denied. Authentication required.")
    if str(requester.id) == str(target_user_id):
        return ALLOW
    return AccessDecision(allowed=False, reason="Access denied. You can only update your own profile.")
