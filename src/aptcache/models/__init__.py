"""Expose handle and metadata models."""

from .dependency import BaseDep, Dependency, DepType, format_dependencies
from .package import CurrentState, InstState, Package, SelectedState
from .repository import PackageFile, SourceEntry, SourceFile
from .version import Version

__all__ = [
    "BaseDep",
    "CurrentState",
    "DepType",
    "Dependency",
    "InstState",
    "Package",
    "PackageFile",
    "SelectedState",
    "SourceEntry",
    "SourceFile",
    "Version",
    "format_dependencies",
]
