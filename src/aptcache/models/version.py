"""Handle for one concrete version of a package."""

import functools
from collections.abc import Iterator
from typing import TYPE_CHECKING, TypeAlias

from aptcache.models.dependency import BaseDep, Dependency, DepType
from aptcache.models.repository import PackageFile

if TYPE_CHECKING:
    from aptcache.cache import Cache
    from aptcache.index import VersionRecord
    from aptcache.models.package import Package

OptionalStr: TypeAlias = str | None


@functools.total_ordering
class Version:
    """A borrowed view of a version record owned by a `Cache`.

    A Version stays valid for as long as its Cache does, independently of the
    Package handle it was obtained from.
    """

    __slots__ = ("_cache", "_id")

    def __init__(self, cache: "Cache", version_id: int):
        self._cache = cache
        self._id = version_id

    @property
    def _record(self) -> "VersionRecord":
        return self._cache._index.versions[self._id]

    @property
    def id(self) -> int:
        return self._id

    @property
    def package(self) -> "Package":
        from aptcache.models.package import Package

        return Package(self._cache, self._record.package)

    @property
    def version(self) -> str:
        return self._record.version

    @property
    def arch(self) -> str:
        return self._record.arch

    @property
    def section(self) -> OptionalStr:
        return self._record.section

    @property
    def priority_str(self) -> OptionalStr:
        return self._record.priority_str

    @property
    def source_name(self) -> str:
        return self._record.source_name

    @property
    def source_version(self) -> str:
        return self._record.source_version

    @property
    def size(self) -> int:
        """Size of the .deb in bytes."""
        return self._record.size

    @property
    def installed_size(self) -> int:
        """Unpacked size in bytes."""
        return self._record.installed_size

    @property
    def summary(self) -> str:
        return self._record.summary

    @property
    def description(self) -> str:
        return self._record.description

    @property
    def multi_arch(self) -> OptionalStr:
        return self._record.multi_arch

    @property
    def is_installed(self) -> bool:
        return self._cache._index.packages[self._record.package].current == self._id

    @property
    def is_downloadable(self) -> bool:
        return any(not pf.is_status_file for pf in self.package_files())

    @property
    def priority(self) -> int:
        """Pin priority the candidate policy assigned to this version."""
        return self._cache._depcache.version_priority(self._id)

    def package_files(self) -> list[PackageFile]:
        """The lists (and possibly the dpkg status file) this version was read from."""
        files = self._cache._index.package_files
        return [files[index] for index, _ in self._record.files]

    def uris(self) -> Iterator[str]:
        """Download locations of the .deb, one per archive carrying it."""
        files = self._cache._index.package_files
        for index, filename in self._record.files:
            package_file = files[index]
            if filename and package_file.base_uri:
                yield package_file.base_uri + filename

    def hash(self, algorithm: str) -> OptionalStr:
        """Look up a checksum by algorithm name, e.g. `hash("SHA256")`; None if unknown."""
        return self._record.hashes.get(algorithm.lower())

    @property
    def md5(self) -> OptionalStr:
        return self.hash("md5sum")

    @property
    def sha1(self) -> OptionalStr:
        return self.hash("sha1")

    @property
    def sha256(self) -> OptionalStr:
        return self.hash("sha256")

    @property
    def sha512(self) -> OptionalStr:
        return self.hash("sha512")

    def provides(self) -> list[tuple[str, OptionalStr]]:
        """Virtual names declared by this version with their provided versions."""
        return list(self._record.provides)

    def _groups(self) -> Iterator[Dependency]:
        for dep_type, records in self._record.groups:
            yield Dependency(dep_type, [BaseDep(self._cache, record, self._id) for record in records])

    def dependencies(self) -> list[Dependency] | None:
        """Every dependency group ordered by relation type, or None if there are none."""
        groups = list(self._groups())
        return groups or None

    def depends_map(self) -> dict[str, list[Dependency]]:
        """Dependency groups keyed by relation name (`Depends`, `PreDepends`, ...)."""
        result: dict[str, list[Dependency]] = {}
        for group in self._groups():
            result.setdefault(group.dep_type.value, []).append(group)
        return result

    def get_depends(self, name: str) -> list[Dependency] | None:
        """Groups of one relation type; None for an unknown or absent relation."""
        dep_type = DepType.lookup(name)
        if dep_type is None:
            return None
        return self.depends_map().get(dep_type.value)

    def recommends(self) -> list[Dependency] | None:
        return self.get_depends(DepType.RECOMMENDS)

    def suggests(self) -> list[Dependency] | None:
        return self.get_depends(DepType.SUGGESTS)

    def enhances(self) -> list[Dependency] | None:
        return self.get_depends(DepType.ENHANCES)

    def _compare(self, other: "Version") -> int:
        if self._record.package != other._record.package and self.package.name != other.package.name:
            raise TypeError(f"Cannot order versions of {self.package.name} and {other.package.name}")
        return self._cache.compare_versions(self.version, other.version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cache is other._cache and self._id == other._id

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._compare(other) < 0

    def __hash__(self) -> int:
        return hash((id(self._cache), self._id))

    def __str__(self) -> str:
        return f"{self.package.name}={self.version}"

    def __repr__(self) -> str:
        return f"<Version {self.package.fullname()} {self.version} ({self.arch})>"
