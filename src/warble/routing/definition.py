"""Route definitions — one parsed manifest line.

A manifest line reads ``VERB PATH TARGET [key=value ...]``::

    GET  /users/:id   Users#show        response=json auth=session,apikey
    POST /login       Auth.login        csrf=exempt
    GET  /reports     Reports::Monthly  auth=role:admin

``TARGET`` selects one of three calling conventions:

- ``Name.method`` — class-level callable, invoked as ``Name.method(request)``
- ``Name#method`` — instance-level, invoked as ``Name(request).method()``
- ``Name`` or ``Namespace::Name`` — a logic unit, invoked through
  ``handle(context, params, locale)``

Target names are checked against a strict pattern and a denylist before
anything is looked up, so an untrusted manifest cannot reach arbitrary
objects.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from warble.errors import LoadError, TargetResolutionError

logger = logging.getLogger("warble.routing")

CLASS_NAME_PATTERN = re.compile(r"^[A-Z][A-Za-z0-9_]*(::[A-Z][A-Za-z0-9_]*)*$")
METHOD_NAME_PATTERN = re.compile(r"^[a-z_][A-Za-z0-9_]*$")

# Names that give access to processes, the file system, threads, or the
# object system. Checked per namespace segment.
FORBIDDEN_NAMES: frozenset[str] = frozenset(
    {
        "Kernel",
        "Object",
        "Type",
        "Class",
        "Module",
        "Builtins",
        "Eval",
        "Exec",
        "Compile",
        "Globals",
        "Import",
        "Importlib",
        "Os",
        "OS",
        "Sys",
        "Subprocess",
        "Process",
        "Popen",
        "Shutil",
        "Pathlib",
        "Path",
        "File",
        "FileUtils",
        "Dir",
        "IO",
        "Io",
        "Socket",
        "Thread",
        "Threading",
        "Multiprocessing",
        "Signal",
        "Ctypes",
        "Pickle",
        "Marshal",
        "Inspect",
        "Gc",
        "Code",
        "Runpy",
        "Binding",
        "ObjectSpace",
    }
)

FORBIDDEN_METHODS: frozenset[str] = frozenset({"mro", "eval", "exec", "system", "fork", "kill"})


class TargetKind(StrEnum):
    CLASS = "class"
    INSTANCE = "instance"
    LOGIC = "logic"


VERBS: frozenset[str] = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"})


@dataclass(frozen=True, slots=True)
class TargetSpec:
    """Parsed route target: which registered name to call, and how."""

    kind: TargetKind
    class_name: str
    method_name: str | None = None

    @classmethod
    def parse(cls, definition: str) -> TargetSpec:
        """Parse and vet a route target.

        Raises ``TargetResolutionError`` for any name outside the
        allowed pattern or on the denylist.
        """
        if "#" in definition:
            class_name, _, method_name = definition.partition("#")
            kind = TargetKind.INSTANCE
        elif "." in definition:
            class_name, _, method_name = definition.partition(".")
            kind = TargetKind.CLASS
        else:
            class_name, method_name, kind = definition, None, TargetKind.LOGIC

        if not CLASS_NAME_PATTERN.match(class_name):
            raise TargetResolutionError(definition, "class name must be CamelCase, optionally ::-namespaced")
        for segment in class_name.split("::"):
            if segment in FORBIDDEN_NAMES:
                raise TargetResolutionError(definition, f"{segment!r} is a forbidden name")

        if method_name is not None:
            if not METHOD_NAME_PATTERN.match(method_name) or method_name.startswith("__"):
                raise TargetResolutionError(definition, f"invalid method name {method_name!r}")
            if method_name in FORBIDDEN_METHODS:
                raise TargetResolutionError(definition, f"{method_name!r} is a forbidden method")

        return cls(kind=kind, class_name=class_name, method_name=method_name)

    @property
    def simple_name(self) -> str:
        """Last namespace segment: ``"Admin::Panel"`` -> ``"Panel"``."""
        return self.class_name.rsplit("::", 1)[-1]

    def __str__(self) -> str:
        if self.kind is TargetKind.INSTANCE:
            return f"{self.class_name}#{self.method_name}"
        if self.kind is TargetKind.CLASS:
            return f"{self.class_name}.{self.method_name}"
        return self.class_name


def parse_options(tokens: list[str], *, line: str = "") -> dict[str, str]:
    """Parse ``key=value`` tokens. Malformed tokens are logged and ignored."""
    options: dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep or not key:
            logger.warning("Ignoring malformed route option %r in %r", token, line)
            continue
        options[key] = value
    return options


@dataclass(frozen=True, slots=True)
class RouteDefinition:
    """An immutable route parsed from one manifest line."""

    verb: str
    path: str
    definition: str
    target: TargetSpec
    options: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}), hash=False)

    @classmethod
    def parse(cls, verb: str, path: str, definition: str) -> RouteDefinition:
        """Build a definition from the three manifest fields.

        *definition* is the target optionally followed by options::

            RouteDefinition.parse("GET", "/admin", "Admin#show auth=role:admin")
        """
        verb = verb.upper()
        if verb not in VERBS:
            raise LoadError(f"Unknown HTTP verb {verb!r}")
        if not path.startswith("/"):
            raise LoadError(f"Route path must start with '/': {path!r}")
        tokens = definition.split()
        if not tokens:
            raise LoadError(f"Missing route target for {verb} {path}")
        target = TargetSpec.parse(tokens[0])
        options = parse_options(tokens[1:], line=f"{verb} {path} {definition}")
        return cls(
            verb=verb,
            path=path,
            definition=tokens[0],
            target=target,
            options=MappingProxyType(options),
        )

    # -- Option helpers --

    @property
    def auth_requirements(self) -> tuple[str, ...]:
        """Strategy requirements from ``auth=``, in priority order."""
        raw = self.options.get("auth", "")
        return tuple(part.strip() for part in raw.split(",") if part.strip())

    @property
    def auth_requirement(self) -> str | None:
        """The raw ``auth=`` option value."""
        return self.options.get("auth") or None

    @property
    def response_type(self) -> str:
        return self.options.get("response", "default")

    @property
    def csrf_exempt(self) -> bool:
        return self.options.get("csrf") == "exempt"

    @property
    def kind(self) -> TargetKind:
        return self.target.kind

    def option(self, key: str, default: str | None = None) -> str | None:
        return self.options.get(key, default)

    def with_options(self, **extra: str) -> RouteDefinition:
        """Return a copy with *extra* options merged over the current ones."""
        merged = {**self.options, **extra}
        return RouteDefinition(
            verb=self.verb,
            path=self.path,
            definition=self.definition,
            target=self.target,
            options=MappingProxyType(merged),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "verb": self.verb,
            "path": self.path,
            "definition": self.definition,
            "kind": str(self.target.kind),
            "class_name": self.target.class_name,
            "method_name": self.target.method_name,
            "options": dict(self.options),
        }

    def __str__(self) -> str:
        opts = " ".join(f"{k}={v}" for k, v in self.options.items())
        return f"{self.verb} {self.path} {self.definition}" + (f" {opts}" if opts else "")
