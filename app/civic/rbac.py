from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import g, jsonify

from app.civic.constants import ALL_ROLES, OFFICIAL_ROLES, ROLE_ADMIN
from app.civic.errors import AuthorizationError

if TYPE_CHECKING:
    from app.civic.models import User


@dataclass(frozen=True)
class Identity:
    """The acting principal as supplied by authentication. Trusted as given."""

    user_id: int
    role: str
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(user_id=user.id, role=user.role, is_active=bool(user.is_active))


# Single policy table: operation key -> roles allowed to perform it.
POLICY: dict[str, frozenset[str]] = {
    "election.create": OFFICIAL_ROLES,
    "election.update": OFFICIAL_ROLES,
    "election.publish": OFFICIAL_ROLES,
    "election.activate": OFFICIAL_ROLES,
    "election.complete": OFFICIAL_ROLES,
    "election.cancel": OFFICIAL_ROLES,
    "candidate.register": ALL_ROLES,
    "candidate.verify": OFFICIAL_ROLES,
    "candidate.reactivate": frozenset({ROLE_ADMIN}),
    "candidate.manage_any": frozenset({ROLE_ADMIN}),
    "vote.cast": ALL_ROLES,
    "vote.invalidate": OFFICIAL_ROLES,
    "vote.audit": OFFICIAL_ROLES,
}


def user_has_permission(identity: Identity | None, permission_key: str) -> bool:
    if not identity or not identity.is_active:
        return False
    return identity.role in POLICY.get(permission_key, frozenset())


def ensure_permission(identity: Identity | None, permission_key: str) -> None:
    if not user_has_permission(identity, permission_key):
        raise AuthorizationError(f"Role is not permitted to perform '{permission_key}'.")


def current_identity() -> Identity | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return Identity.from_user(user)


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_identity() is None:
            return jsonify({"ok": False, "error": "unauthenticated", "message": "Authentication required."}), 401
        return fn(*args, **kwargs)

    return wrapped
