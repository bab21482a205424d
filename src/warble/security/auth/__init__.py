"""Authentication: strategy results, strategies, resolution, and the route wrapper."""

from warble.security.auth.authorization import RoleAuthorization
from warble.security.auth.resolver import ResolvedStrategy, StrategyResolver
from warble.security.auth.result import AuthFailure, StrategyResult
from warble.security.auth.strategies import (
    APIKeyStrategy,
    AuthStrategy,
    NoAuthStrategy,
    PermissionStrategy,
    RoleStrategy,
    SessionStrategy,
)
from warble.security.auth.wrapper import RouteAuthWrapper

__all__ = [
    "APIKeyStrategy",
    "AuthFailure",
    "AuthStrategy",
    "NoAuthStrategy",
    "PermissionStrategy",
    "ResolvedStrategy",
    "RoleAuthorization",
    "RoleStrategy",
    "RouteAuthWrapper",
    "SessionStrategy",
    "StrategyResolver",
    "StrategyResult",
]
