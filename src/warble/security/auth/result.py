"""Authentication outcomes.

``StrategyResult`` is what handlers see: either an authenticated user or
the anonymous result. ``AuthFailure`` only tells the resolver to move on
to the next requirement; it never reaches handler code.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class StrategyResult:
    """Immutable outcome of an authentication attempt.

    ``user`` is opaque: a dict, a model object, or ``None`` for anonymous
    requests. ``session`` is the mapping the handler will see as its
    session.
    """

    session: Mapping[str, Any] = field(default_factory=dict, hash=False)
    user: Any = None
    auth_method: str = "anonymous"
    metadata: Mapping[str, Any] = field(default_factory=_empty, hash=False)
    strategy_name: str | None = None

    @classmethod
    def anonymous(cls, **metadata: Any) -> StrategyResult:
        """The result for routes without ``auth=`` (and for public strategies)."""
        return cls(session={}, user=None, auth_method="anonymous", metadata=MappingProxyType(metadata))

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    @property
    def anonymous_user(self) -> bool:
        return self.user is None

    # -- User accessors --

    def _user_field(self, *names: str) -> Any:
        user = self.user
        if user is None:
            return None
        for name in names:
            if isinstance(user, Mapping):
                if name in user:
                    return user[name]
            elif hasattr(user, name):
                return getattr(user, name)
        return None

    @property
    def user_id(self) -> Any:
        value = self._user_field("id", "user_id")
        if value is None:
            value = self.session.get("user_id")
        return value

    @property
    def user_name(self) -> Any:
        return self._user_field("name", "username", "email")

    @property
    def roles(self) -> tuple[str, ...]:
        value = self._user_field("roles")
        if value is None:
            value = self._user_field("role")
        if value is None:
            value = self.metadata.get("roles") or self.metadata.get("user_roles")
        return _as_names(value)

    @property
    def permissions(self) -> tuple[str, ...]:
        value = self._user_field("permissions")
        if value is None:
            value = self.metadata.get("permissions") or self.metadata.get("user_permissions")
        return _as_names(value)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, *roles: str) -> bool:
        owned = set(self.roles)
        return any(role in owned for role in roles)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def user_context(self) -> dict[str, Any]:
        """Minimal user facts suitable for templates and logs."""
        if not self.authenticated:
            return {"authenticated": False}
        return {
            "authenticated": True,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "roles": list(self.roles),
            "permissions": list(self.permissions),
            "auth_method": self.auth_method,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "authenticated": self.authenticated,
            "auth_method": self.auth_method,
            "strategy_name": self.strategy_name,
            "user_id": self.user_id,
            "metadata": dict(self.metadata),
        }


def _as_names(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(item) for item in value)


@dataclass(frozen=True, slots=True)
class AuthFailure:
    """A strategy declined the request. Internal to the resolver."""

    failure_reason: str
    auth_method: str = "unknown"

    @property
    def authenticated(self) -> bool:
        return False
