"""Authentication strategies.

A strategy answers one question for one requirement: does this request
satisfy it? It returns a ``StrategyResult`` on success, or an
``AuthFailure`` / ``None`` to let the resolver try the next requirement.

Strategies are registered on the app under a name::

    app.add_auth_strategy("session", SessionStrategy())
    app.add_auth_strategy("role:*", RoleStrategy())
    app.add_auth_strategy("apikey", APIKeyStrategy(api_keys=["k-123"]))

For a requirement like ``role:admin`` matched through its prefix or the
``role:*`` wildcard, the strategy receives ``"admin"`` as *argument*.
For an exact-name match, *argument* is ``None``.
"""

import hmac
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from warble.http.request import Request
from warble.middleware.sessions import current_session
from warble.security.auth.result import AuthFailure, StrategyResult


class AuthStrategy:
    """Base class for strategies. Subclasses implement ``authenticate``."""

    auth_method = "custom"

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure | None:
        raise NotImplementedError

    def success(
        self,
        user: Any,
        *,
        session: Mapping[str, Any] | None = None,
        auth_method: str | None = None,
        **metadata: Any,
    ) -> StrategyResult:
        return StrategyResult(
            session=session if session is not None else {},
            user=user,
            auth_method=auth_method or self.auth_method,
            metadata=MappingProxyType(metadata),
        )

    def failure(self, reason: str) -> AuthFailure:
        return AuthFailure(failure_reason=reason, auth_method=self.auth_method)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class NoAuthStrategy(AuthStrategy):
    """Public access: always succeeds with an anonymous result."""

    auth_method = "noauth"

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult:
        return StrategyResult(
            session={},
            user=None,
            auth_method="anonymous",
            metadata=MappingProxyType({"ip": request.remote_addr}),
        )


class SessionStrategy(AuthStrategy):
    """Authenticated when the session holds a user id.

    ``user_loader`` turns the stored id into a user object; without one
    the user is a small dict built from the session.
    """

    auth_method = "session"

    def __init__(
        self,
        session_key: str = "user_id",
        user_loader: Callable[[Any], Any] | None = None,
    ) -> None:
        self.session_key = session_key
        self.user_loader = user_loader

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure:
        session = current_session()
        if not session or not session.get(self.session_key):
            return self.failure("Not authenticated")
        user_id = session[self.session_key]
        if self.user_loader is not None:
            user = self.user_loader(user_id)
            if user is None:
                return self.failure("Unknown user")
        else:
            user = {
                "id": user_id,
                "name": session.get("user_name"),
                "roles": list(session.get("user_roles", ())),
                "permissions": list(session.get("user_permissions", ())),
            }
        return self.success(user, session=session)


class RoleStrategy(AuthStrategy):
    """Authenticated when the session's roles include a required role.

    The required role comes from the requirement (``role:admin``) or,
    for a bare ``role`` requirement, from ``allowed_roles``. Any one
    match is enough.
    """

    auth_method = "role"

    def __init__(self, allowed_roles: Iterable[str] = (), session_key: str = "user_roles") -> None:
        self.allowed_roles = tuple(allowed_roles)
        self.session_key = session_key

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure:
        session = current_session() or {}
        roles = _names(session.get(self.session_key))
        if not roles:
            return self.failure("No roles assigned")
        required = (argument,) if argument else self.allowed_roles
        matched = [role for role in required if role in roles]
        if required and not matched:
            return self.failure(f"Requires one of: {', '.join(required)}")
        user = {"id": session.get("user_id"), "name": session.get("user_name"), "roles": list(roles)}
        return self.success(user, session=session, roles=roles, required_role=matched[0] if matched else None)


class PermissionStrategy(AuthStrategy):
    """Authenticated when the session grants a required permission."""

    auth_method = "permission"

    def __init__(
        self, required_permissions: Iterable[str] = (), session_key: str = "user_permissions"
    ) -> None:
        self.required_permissions = tuple(required_permissions)
        self.session_key = session_key

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure:
        session = current_session() or {}
        granted = _names(session.get(self.session_key))
        required = (argument,) if argument else self.required_permissions
        if not granted:
            return self.failure("No permissions granted")
        if required and not any(permission in granted for permission in required):
            return self.failure(f"Requires permission: {', '.join(required)}")
        user = {"id": session.get("user_id"), "permissions": list(granted)}
        return self.success(user, session=session, permissions=granted)


class APIKeyStrategy(AuthStrategy):
    """Authenticated by an API key in a header, then a query parameter.

    With no configured keys any non-empty key is accepted; use that only
    behind another gate.
    """

    auth_method = "api_key"

    def __init__(
        self,
        api_keys: Iterable[str] = (),
        header_name: str = "X-API-Key",
        param_name: str = "api_key",
    ) -> None:
        self.api_keys = tuple(api_keys)
        self.header_name = header_name
        self.param_name = param_name

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure:
        key = request.headers.get(self.header_name) or request.query.get(self.param_name)
        if not key:
            return self.failure("No API key provided")
        if self.api_keys and not self._known(key):
            return self.failure("Invalid API key")
        user = {"id": f"api:{key[:6]}", "api_key_prefix": key[:6]}
        return self.success(user, session={})

    def _known(self, key: str) -> bool:
        candidate = key.encode("utf-8")
        return any(hmac.compare_digest(candidate, valid.encode("utf-8")) for valid in self.api_keys)


def _names(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(item) for item in value)
