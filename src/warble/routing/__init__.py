"""Route compiler and dispatcher."""

from warble.routing.definition import RouteDefinition, TargetKind, TargetSpec
from warble.routing.manifest import load_manifest, parse_line, parse_manifest
from warble.routing.route import Route, RouteMatch, compile_path
from warble.routing.router import Router, StaticMatch, normalize_path
from warble.routing.static import StaticFiles

__all__ = [
    "Route",
    "RouteDefinition",
    "RouteMatch",
    "Router",
    "StaticFiles",
    "StaticMatch",
    "TargetKind",
    "TargetSpec",
    "compile_path",
    "load_manifest",
    "normalize_path",
    "parse_line",
    "parse_manifest",
]
