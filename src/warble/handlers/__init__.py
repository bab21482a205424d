"""Route targets: the registered handler table and logic units."""

from warble.handlers.logic import Logic, LogicUnit
from warble.handlers.registry import HandlerRegistry, Invoker

__all__ = ["HandlerRegistry", "Invoker", "Logic", "LogicUnit"]
