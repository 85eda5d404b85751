"""
Caller identity as yielded by the identity provider.
Every workflow operation takes an explicit Caller; there is no ambient current user.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from estateclaims.errors import AuthorizationError, ValidationError
from estateclaims.models.enums import Role

STAFF_ROLES = frozenset({Role.ADMIN, Role.REVIEWER})

# Actor id used for entries written on behalf of external collaborators (e.g. asset discovery)
SYSTEM_USER_ID = "system"


@dataclass(frozen=True)
class Caller:
    """User id, role set and request metadata for the current request."""

    user_id: str
    roles: frozenset[Role] = field(default_factory=frozenset)
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & STAFF_ROLES)

    def has_role(self, *roles: Role) -> bool:
        return any(r in self.roles for r in roles)


def system_caller() -> Caller:
    return Caller(user_id=SYSTEM_USER_ID, roles=frozenset({Role.ADMIN}))


def parse_roles(raw: str | None) -> frozenset[Role]:
    """
    Parse a comma-separated role list (e.g. "ADMIN,REVIEWER") into a role set.
    Blank input yields CLAIMANT only. Unknown roles raise ValidationError.
    """
    if raw is None or not raw.strip():
        return frozenset({Role.CLAIMANT})
    roles = set()
    for part in raw.split(","):
        name = part.strip().upper()
        if not name:
            continue
        try:
            roles.add(Role(name))
        except ValueError as e:
            raise ValidationError(f"Unknown role: {part.strip()}") from e
    return frozenset(roles)


def require_staff(caller: Caller, operation: str) -> None:
    """Raise AuthorizationError unless the caller is ADMIN or REVIEWER."""
    if not caller.is_staff:
        raise AuthorizationError(
            f"{operation} requires ADMIN or REVIEWER role",
            {"user_id": caller.user_id, "operation": operation},
        )


def require_owner_or_staff(caller: Caller, owner_id: str, operation: str) -> None:
    """Raise AuthorizationError unless the caller owns the entity or is staff."""
    if caller.user_id != owner_id and not caller.is_staff:
        raise AuthorizationError(
            f"{operation} is only allowed for the owning claimant",
            {"user_id": caller.user_id, "operation": operation},
        )
