"""Role checks inside handlers.

Authentication decides *who* the caller is; this decides whether that
caller may touch a resource::

    RoleAuthorization("admin", "editor").authorize(get_strategy_result(), resource="posts")

Any one of the listed roles is enough.
"""

from warble.errors import AuthorizationError
from warble.security.auth.result import StrategyResult


class RoleAuthorization:
    __slots__ = ("roles",)

    def __init__(self, *roles: str) -> None:
        if not roles:
            msg = "RoleAuthorization needs at least one role"
            raise ValueError(msg)
        self.roles = roles

    def check(self, result: StrategyResult) -> bool:
        return result.authenticated and result.has_any_role(*self.roles)

    def authorize(self, result: StrategyResult, *, resource: str | None = None, action: str | None = None) -> None:
        """Raise ``AuthorizationError`` unless *result* holds one of the roles."""
        if not self.check(result):
            raise AuthorizationError(
                f"Requires one of the roles: {', '.join(self.roles)}",
                resource=resource,
                action=action,
                user_id=result.user_id,
            )
