"""Handle for a package identity and the dpkg states recorded for it."""

from collections.abc import Iterator
from enum import IntEnum
from typing import TYPE_CHECKING

from aptcache.models.version import Version

if TYPE_CHECKING:
    from aptcache.cache import Cache
    from aptcache.depcache import PackageState
    from aptcache.index import PackageRecord


class SelectedState(IntEnum):
    """What the administrator asked dpkg to do with the package."""

    UNKNOWN = 0
    INSTALL = 1
    HOLD = 2
    DEINSTALL = 3
    PURGE = 4


class InstState(IntEnum):
    OK = 0
    REINSTREQ = 1
    HOLD_INST = 2
    HOLD_REINSTREQ = 3


class CurrentState(IntEnum):
    """How far dpkg got installing the package."""

    NOT_INSTALLED = 0
    UNPACKED = 1
    HALF_CONFIGURED = 2
    HALF_INSTALLED = 4
    CONFIG_FILES = 5
    INSTALLED = 6
    TRIGGERS_AWAITED = 7
    TRIGGERS_PENDING = 8


class Package:
    """A borrowed view of a `(name, architecture)` package record owned by a `Cache`.

    State flags (`marked_*`, `is_auto_removable`, broken checks) are read from the
    snapshot the cache computed when it was opened; they never change.
    """

    __slots__ = ("_cache", "_id")

    def __init__(self, cache: "Cache", package_id: int):
        self._cache = cache
        self._id = package_id

    @property
    def _record(self) -> "PackageRecord":
        return self._cache._index.packages[self._id]

    @property
    def _state(self) -> "PackageState":
        return self._cache._depcache.state(self._id)

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._record.name

    @property
    def arch(self) -> str:
        return self._record.arch

    def fullname(self, pretty: bool = False) -> str:
        """`name:arch`; with `pretty` the native architecture is left out."""
        if pretty and self.arch == self._cache.architecture:
            return self.name
        return f"{self.name}:{self.arch}"

    @property
    def essential(self) -> bool:
        return self._record.essential

    @property
    def has_versions(self) -> bool:
        return bool(self._record.versions)

    @property
    def has_provides(self) -> bool:
        return bool(self._record.provides)

    @property
    def is_virtual(self) -> bool:
        return not self.has_versions

    def versions(self) -> Iterator[Version]:
        """Every known version, newest first."""
        for version_id in self._record.versions:
            yield Version(self._cache, version_id)

    def get_version(self, version: str) -> Version | None:
        for candidate in self.versions():
            if candidate.version == version:
                return candidate
        return None

    @property
    def installed(self) -> Version | None:
        current = self._record.current
        return Version(self._cache, current) if current is not None else None

    @property
    def candidate(self) -> Version | None:
        candidate = self._state.candidate
        return Version(self._cache, candidate) if candidate is not None else None

    @property
    def is_installed(self) -> bool:
        return self._record.current is not None

    @property
    def is_auto_installed(self) -> bool:
        return self._state.auto_installed

    @property
    def is_auto_removable(self) -> bool:
        """Installed (or about to be) and no longer needed by any manual package."""
        return (self.is_installed or self.marked_install) and self._state.garbage

    def is_upgradable(self, skip_depcache: bool = False) -> bool:
        """Whether the candidate differs from the installed version.

        Args:
            skip_depcache: Compare against the policy candidate without consulting the marks
        """
        if not self.is_installed:
            return False
        if skip_depcache:
            candidate = self._cache._depcache.policy_candidate(self._id)
            return candidate is not None and candidate != self._record.current
        return self._state.upgradable

    @property
    def marked_install(self) -> bool:
        return self._state.marked_install

    @property
    def marked_upgrade(self) -> bool:
        return self._state.marked_upgrade

    @property
    def marked_delete(self) -> bool:
        return self._state.marked_delete

    @property
    def marked_keep(self) -> bool:
        return self._state.marked_keep

    @property
    def marked_downgrade(self) -> bool:
        return self._state.marked_downgrade

    @property
    def marked_reinstall(self) -> bool:
        return self._state.marked_reinstall

    @property
    def is_now_broken(self) -> bool:
        return self._state.now_broken

    @property
    def is_inst_broken(self) -> bool:
        return self._state.inst_broken

    @property
    def selected_state(self) -> SelectedState:
        return self._record.selected_state

    @property
    def inst_state(self) -> InstState:
        return self._record.inst_state

    @property
    def current_state(self) -> CurrentState:
        return self._record.current_state

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self._cache is other._cache and self._id == other._id

    def __hash__(self) -> int:
        return hash((id(self._cache), self._id))

    def __str__(self) -> str:
        return self.fullname(pretty=True)

    def __repr__(self) -> str:
        return f"<Package {self.fullname()} id={self._id}>"
