"""Logic units — handlers that never see the raw request.

A logic unit is any class with a no-argument constructor and::

    def handle(self, context: StrategyResult, params: Mapping[str, Any], locale: str) -> Any

``context`` is the request's authentication result, ``params`` the
validated, merged path/query/form/JSON parameters, and ``locale`` the
negotiated locale. The ``Logic`` base class splits ``handle`` into two
explicit steps: ``raise_concerns`` (validate, authorize; raise to stop)
and ``process`` (do the work, return a value for the formatter).
"""

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from warble.security.auth.result import StrategyResult


@runtime_checkable
class LogicUnit(Protocol):
    def handle(self, context: StrategyResult, params: Mapping[str, Any], locale: str) -> Any: ...


class Logic:
    """Convenience base for logic units.

    Usage::

        class ListReports(Logic):
            def raise_concerns(self, context, params, locale):
                RoleAuthorization("analyst").authorize(context, resource="reports")

            def process(self, context, params, locale):
                return {"reports": [], "locale": locale}
    """

    def handle(self, context: StrategyResult, params: Mapping[str, Any], locale: str) -> Any:
        self.raise_concerns(context, params, locale)
        return self.process(context, params, locale)

    def raise_concerns(self, context: StrategyResult, params: Mapping[str, Any], locale: str) -> None:
        """Raise an ``HTTPError`` subclass to reject the request."""

    def process(self, context: StrategyResult, params: Mapping[str, Any], locale: str) -> Any:
        raise NotImplementedError
