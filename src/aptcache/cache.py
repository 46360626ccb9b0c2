"""The root cache object: lookups, filtered iteration, provides and refresh."""

import dataclasses
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

from aptcache.config import Configuration
from aptcache.depcache import DepCache
from aptcache.index import PackageIndex, compare_versions, parse_release_file
from aptcache.models.dependency import BaseDep
from aptcache.models.package import Package
from aptcache.models.repository import (
    PACKAGE_INDEX_TYPE,
    STATUS_INDEX_TYPE,
    PackageFile,
    SourceEntry,
    SourceFile,
)
from aptcache.models.version import Version
from aptcache.sources import IndexTarget, SourceList
from aptcache.utils import uri_to_filename

if TYPE_CHECKING:
    import httpx

    from aptcache.progress import UpdateProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Require:
    """Bytes of additional disk space committing the marks would take."""

    bytes: int


@dataclass(frozen=True, slots=True)
class Free:
    """Bytes of disk space committing the marks would release."""

    bytes: int


DiskSpace: TypeAlias = Require | Free


class VirtualFilter(Enum):
    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


class StateFilter(Enum):
    ANY = "any"
    ONLY = "only"
    EXCLUDE = "exclude"

    def accepts(self, value: bool) -> bool:
        match self:
            case StateFilter.ONLY:
                return value
            case StateFilter.EXCLUDE:
                return not value
        return True


@dataclass(frozen=True)
class PackageSort:
    """Filters applied while iterating `Cache.packages`.

    The default selects every real (non-virtual) package. Each toggle returns a
    new sort, so conflicting toggles resolve to the last one applied:

        >>> PackageSort().upgradable().not_upgradable().upgradable_filter
        <StateFilter.EXCLUDE: 'exclude'>
    """

    virtual: VirtualFilter = VirtualFilter.EXCLUDE
    upgradable_filter: StateFilter = StateFilter.ANY
    installed_filter: StateFilter = StateFilter.ANY
    auto_installed_filter: StateFilter = StateFilter.ANY
    auto_removable_filter: StateFilter = StateFilter.ANY
    sort_names: bool = False

    def include_virtual(self) -> "PackageSort":
        return dataclasses.replace(self, virtual=VirtualFilter.INCLUDE)

    def only_virtual(self) -> "PackageSort":
        return dataclasses.replace(self, virtual=VirtualFilter.ONLY)

    def upgradable(self) -> "PackageSort":
        return dataclasses.replace(self, upgradable_filter=StateFilter.ONLY)

    def not_upgradable(self) -> "PackageSort":
        return dataclasses.replace(self, upgradable_filter=StateFilter.EXCLUDE)

    def installed(self) -> "PackageSort":
        return dataclasses.replace(self, installed_filter=StateFilter.ONLY)

    def not_installed(self) -> "PackageSort":
        return dataclasses.replace(self, installed_filter=StateFilter.EXCLUDE)

    def auto_installed(self) -> "PackageSort":
        return dataclasses.replace(self, auto_installed_filter=StateFilter.ONLY)

    def manually_installed(self) -> "PackageSort":
        return dataclasses.replace(self, auto_installed_filter=StateFilter.EXCLUDE)

    def auto_removable(self) -> "PackageSort":
        return dataclasses.replace(self, auto_removable_filter=StateFilter.ONLY)

    def not_auto_removable(self) -> "PackageSort":
        return dataclasses.replace(self, auto_removable_filter=StateFilter.EXCLUDE)

    def names(self) -> "PackageSort":
        """Iterate in name order instead of index order."""
        return dataclasses.replace(self, sort_names=True)

    def matches(self, pkg: Package) -> bool:
        match self.virtual:
            case VirtualFilter.EXCLUDE if not pkg.has_versions:
                return False
            case VirtualFilter.ONLY if pkg.has_versions:
                return False
        return (
            self.upgradable_filter.accepts(pkg.is_upgradable())
            and self.installed_filter.accepts(pkg.is_installed)
            and self.auto_installed_filter.accepts(pkg.is_auto_installed)
            and self.auto_removable_filter.accepts(pkg.is_auto_removable)
        )


class Cache:
    """In-memory index over sources, downloaded lists and the dpkg status database.

    The cache is built once and never changes. `update` refreshes the lists on
    disk; open a new cache afterwards to see the new data. Package and Version
    handles must not be kept across a refresh.

    Raises:
        MetadataError: If a source list, index or the status database is unreadable or corrupt
    """

    def __init__(self, config: Configuration | None = None):
        self.config = config or Configuration.from_env()
        self.architecture = self.config.architecture
        self._sources = SourceList.read(self.config)
        self._index = PackageIndex(self.architecture)

        self._load_lists()
        self._load_status()
        self._index.finish()
        self._depcache = DepCache(self._index, self.config)
        logger.info(
            f"Opened cache with {len(self._index.packages)} packages, "
            f"{len(self._index.versions)} versions from {len(self._index.package_files)} files"
        )

    @classmethod
    def open(cls, config: Configuration | None = None) -> "Cache":
        return cls(config)

    def _release_info(self, entry: SourceEntry) -> dict[str, str | None]:
        lists = self.config.lists_path
        for uri in entry.release_uris():
            path = lists / uri_to_filename(uri)
            if path.is_file():
                release = parse_release_file(path)
                return {key: release.get(key.title()) for key in ("origin", "label", "suite", "codename")}
        return {}

    def _find_list(self, target: IndexTarget) -> Path | None:
        base = self.config.lists_path / target.filename
        for path in (base, base.with_name(f"{base.name}.xz"), base.with_name(f"{base.name}.gz")):
            if path.is_file():
                return path
        return None

    def _load_lists(self) -> None:
        releases: dict[str, dict[str, str | None]] = {}
        for target in self._sources.index_targets():
            entry = target.entry
            path = self._find_list(target)
            if path is None:
                logger.debug(f"No list file for {target.description}, skipping")
                continue
            if entry.dist_uri not in releases:
                releases[entry.dist_uri] = self._release_info(entry)
            info = releases[entry.dist_uri]
            package_file = PackageFile(
                filename=path,
                index_type=PACKAGE_INDEX_TYPE,
                archive=info.get("suite") or entry.suite,
                origin=info.get("origin"),
                codename=info.get("codename"),
                label=info.get("label"),
                site=entry.site,
                component=target.component,
                arch=target.architecture,
                is_trusted=entry.trusted,
                base_uri=entry.base_uri,
            )
            self._index.load_packages_file(path, package_file)

    def _load_status(self) -> None:
        status = self.config.status_path
        if status.is_file():
            self._index.load_status(
                status,
                PackageFile(filename=status, index_type=STATUS_INDEX_TYPE, archive="now"),
            )
        else:
            logger.debug(f"No dpkg status file at {status}")

        extended = self.config.extended_states_path
        if extended.is_file():
            self._index.load_extended_states(extended)

    def get(self, name: str) -> Package | None:
        """Look up a package by name, optionally qualified as `name:arch`.

        Unqualified names (and `name:any`) resolve to the native architecture first.
        """
        name, _, arch = name.partition(":")
        match arch:
            case "" | "any":
                package_id = self._index.find(name)
            case "native":
                package_id = self._index.find(name, self.architecture)
            case _:
                package_id = self._index.find(name, arch)
        return Package(self, package_id) if package_id is not None else None

    def __getitem__(self, name: str) -> Package:
        if (pkg := self.get(name)) is None:
            raise KeyError(name)
        return pkg

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._index.packages)

    def __iter__(self) -> Iterator[Package]:
        return self.packages()

    def packages(self, sort: PackageSort | None = None) -> Iterator[Package]:
        """Lazily yield the packages `sort` selects; every call starts over."""
        sort = sort or PackageSort()
        ids = range(len(self._index.packages))
        if sort.sort_names:
            records = self._index.packages
            ids = sorted(ids, key=lambda package_id: (records[package_id].name, records[package_id].arch))
        for package_id in ids:
            pkg = Package(self, package_id)
            if sort.matches(pkg):
                yield pkg

    def provides(
        self,
        pkg: Package,
        use_virtual_only: bool = False,
        candidate_only: bool = False,
    ) -> Iterator[tuple[Version, str]]:
        """Yield `(providing version, provided name)` edges for a package name.

        Args:
            pkg: The package whose name is provided
            use_virtual_only: Only yield edges when `pkg` is purely virtual
            candidate_only: Only yield versions that are their package's candidate
        """
        if use_virtual_only and pkg.has_versions:
            return
        for version_id, _ in self._index.packages[pkg.id].provides:
            version = Version(self, version_id)
            if candidate_only and version.package.candidate != version:
                continue
            yield version, pkg.name

    def sources(self) -> Iterator[SourceFile]:
        """Yield every remote index file a refresh would acquire."""
        yield from self._sources.source_files()

    @property
    def source_entries(self) -> list[SourceEntry]:
        return list(self._sources)

    def disk_size(self) -> DiskSpace:
        delta = self._depcache.disk_delta()
        return Free(-delta) if delta < 0 else Require(delta)

    def download_size(self) -> int:
        return self._depcache.download_size()

    @staticmethod
    def compare_versions(left: str, right: str) -> int:
        return compare_versions(left, right)

    def broken_dependencies(self) -> Iterator[tuple[Version, BaseDep]]:
        """Yield positive base dependencies with no satisfying version in the cache."""
        for record in self._index.versions:
            for dep_type, group in record.groups:
                if not dep_type.is_positive:
                    continue
                for dep in group:
                    if not self._index.all_targets(dep, record.id):
                        yield Version(self, record.id), BaseDep(self, dep, record.id)

    def update(
        self,
        progress: "UpdateProgress | None" = None,
        transport: "httpx.AsyncBaseTransport | None" = None,
    ) -> None:
        """Refresh the downloaded lists, reporting through `progress`.

        Blocks until the refresh finishes, so it must not be called from a running
        event loop. The cache itself is not reloaded.

        Raises:
            FetchError: If the refresh cannot start, or after `stop` when any item failed hard
        """
        from aptcache.fetcher import Acquire
        from aptcache.progress import AptUpdateProgress

        Acquire(self.config, self._sources, progress or AptUpdateProgress(), transport).run()

    def __repr__(self) -> str:
        return f"<Cache {self.config.root_dir} packages={len(self)}>"
