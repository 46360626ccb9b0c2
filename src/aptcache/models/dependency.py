"""Dependency groups and base dependencies of a version."""

from collections.abc import Iterable, Iterator
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aptcache.cache import Cache
    from aptcache.index import BaseDepRecord
    from aptcache.models.package import Package
    from aptcache.models.version import Version


class DepType(StrEnum):
    """Relation types, named the way APT names them internally."""

    DEPENDS = "Depends"
    PRE_DEPENDS = "PreDepends"
    SUGGESTS = "Suggests"
    RECOMMENDS = "Recommends"
    CONFLICTS = "Conflicts"
    REPLACES = "Replaces"
    OBSOLETES = "Obsoletes"
    BREAKS = "Breaks"
    ENHANCES = "Enhances"

    @property
    def field_name(self) -> str:
        """The control file field carrying this relation."""
        return "Pre-Depends" if self is DepType.PRE_DEPENDS else self.value

    @property
    def is_negative(self) -> bool:
        return self in (DepType.CONFLICTS, DepType.BREAKS, DepType.OBSOLETES)

    @property
    def is_positive(self) -> bool:
        """Relations that expect a satisfying version to exist."""
        return not self.is_negative and self is not DepType.REPLACES

    @property
    def is_critical(self) -> bool:
        """Relations that must hold for a package to be considered unbroken."""
        return self in (
            DepType.DEPENDS,
            DepType.PRE_DEPENDS,
            DepType.CONFLICTS,
            DepType.BREAKS,
            DepType.OBSOLETES,
        )

    @classmethod
    def lookup(cls, name: str) -> "DepType | None":
        """Find a relation type by its APT name or its control field name."""
        for dep_type in cls:
            if name in (dep_type.value, dep_type.field_name):
                return dep_type
        return None


class BaseDep:
    """A single `name (op version)` relation, one alternative of a group."""

    __slots__ = ("_cache", "_record", "_owner")

    def __init__(self, cache: "Cache", record: "BaseDepRecord", owner: int):
        self._cache = cache
        self._record = record
        self._owner = owner

    @property
    def name(self) -> str:
        return self._record.name

    @property
    def arch(self) -> str | None:
        """Architecture qualifier as written (`any`, `native`, an architecture) or None."""
        return self._record.arch

    @property
    def comp(self) -> str:
        """Comparison operator, empty when the relation is unversioned."""
        return self._record.comp

    @property
    def version(self) -> str:
        return self._record.version

    @property
    def dep_type(self) -> DepType:
        return self._record.dep_type

    def target_package(self) -> "Package":
        from aptcache.models.package import Package

        return Package(self._cache, self._record.target)

    def all_targets(self) -> Iterator["Version"]:
        """Every version in the cache satisfying this relation, providers included.

        An empty result for a positive relation means the metadata is inconsistent;
        see `Cache.broken_dependencies`.
        """
        from aptcache.models.version import Version

        for version_id in self._cache._index.all_targets(self._record, self._owner):
            yield Version(self._cache, version_id)

    def __str__(self) -> str:
        name = f"{self.name}:{self.arch}" if self.arch else self.name
        if self.comp:
            return f"{name} ({self.comp} {self.version})"
        return name

    def __repr__(self) -> str:
        return f"<BaseDep {self.dep_type.value}: {self}>"


class Dependency:
    """An or-group of base dependencies; satisfied when any member is."""

    __slots__ = ("dep_type", "base_deps")

    def __init__(self, dep_type: DepType, base_deps: list[BaseDep]):
        self.dep_type = dep_type
        self.base_deps = base_deps

    def is_or(self) -> bool:
        return len(self.base_deps) > 1

    def first(self) -> BaseDep:
        return self.base_deps[0]

    def __iter__(self) -> Iterator[BaseDep]:
        return iter(self.base_deps)

    def __len__(self) -> int:
        return len(self.base_deps)

    def __getitem__(self, index: int) -> BaseDep:
        return self.base_deps[index]

    def __str__(self) -> str:
        return " | ".join(str(base_dep) for base_dep in self.base_deps)

    def __repr__(self) -> str:
        return f"<Dependency {self.dep_type.value}: {self}>"


def format_dependencies(groups: Iterable[Dependency]) -> str:
    """Render groups as in a control field: `a (>= 1) | b, c`."""
    return ", ".join(str(group) for group in groups)
