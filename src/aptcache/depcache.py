"""Read-only snapshot of candidate selection and package markings."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from aptcache import constants
from aptcache.config import Configuration, MarkAction
from aptcache.index import BaseDepRecord, PackageIndex, compare_versions
from aptcache.models.dependency import DepType

logger = logging.getLogger(__name__)

# pins at or above this may move a package below its installed version
_DOWNGRADE_PRIORITY = 1000


@dataclass(slots=True)
class PackageState:
    candidate: int | None = None
    # version the package would have after committing the marks
    install_version: int | None = None
    marked_install: bool = False
    marked_upgrade: bool = False
    marked_delete: bool = False
    marked_keep: bool = True
    marked_downgrade: bool = False
    marked_reinstall: bool = False
    upgradable: bool = False
    auto_installed: bool = False
    garbage: bool = False
    now_broken: bool = False
    inst_broken: bool = False


class DepCache:
    """Candidate policy, marks, garbage and broken flags, computed once per cache build."""

    def __init__(self, index: PackageIndex, config: Configuration):
        self._index = index
        self._config = config
        self._priorities = [self._compute_priority(record.files) for record in index.versions]
        self._states = [self._initial_state(pkg.id) for pkg in index.packages]

        self._apply_marks(config.marks)
        self._mark_and_sweep()
        self._check_broken()

    def state(self, package_id: int) -> PackageState:
        return self._states[package_id]

    def version_priority(self, version_id: int) -> int:
        return self._priorities[version_id]

    def _compute_priority(self, files: list[tuple[int, str | None]]) -> int:
        priority = 0
        for file_index, _ in files:
            if self._index.package_files[file_index].is_status_file:
                priority = max(priority, constants.PRIORITY_INSTALLED)
            else:
                priority = max(priority, constants.PRIORITY_ARCHIVE)
        return priority

    def policy_candidate(self, package_id: int) -> int | None:
        """Newest version of the highest priority, never below the installed one unless pinned."""
        pkg = self._index.packages[package_id]
        best: int | None = None
        for version_id in pkg.versions:
            if best is None or self._priorities[version_id] > self._priorities[best]:
                best = version_id

        current = pkg.current
        if best is None or current is None or best == current:
            return best
        older = compare_versions(self._index.versions[best].version, self._index.versions[current].version) < 0
        if older and self._priorities[best] < _DOWNGRADE_PRIORITY:
            return current
        return best

    def _initial_state(self, package_id: int) -> PackageState:
        pkg = self._index.packages[package_id]
        candidate = self.policy_candidate(package_id)
        return PackageState(
            candidate=candidate,
            install_version=pkg.current,
            upgradable=pkg.current is not None and candidate is not None and candidate != pkg.current,
            auto_installed=pkg.auto_installed,
        )

    def _resolve_mark_target(self, name: str) -> int | None:
        name, _, arch = name.partition(":")
        if arch in ("", "any"):
            return self._index.find(name)
        if arch == "native":
            arch = self._index.architecture
        return self._index.find(name, arch)

    def _apply_marks(self, marks: dict[str, MarkAction]) -> None:
        for name, action in marks.items():
            package_id = self._resolve_mark_target(name)
            if package_id is None:
                logger.warning(f"Ignoring {action} mark for unknown package '{name}'")
                continue

            pkg = self._index.packages[package_id]
            state = self._states[package_id]
            match action:
                case MarkAction.INSTALL:
                    if state.candidate is None:
                        logger.warning(f"Ignoring install mark for '{name}', it has no candidate")
                    elif pkg.current is None:
                        state.marked_install = True
                        state.install_version = state.candidate
                    elif state.candidate != pkg.current:
                        newer = compare_versions(
                            self._index.versions[state.candidate].version,
                            self._index.versions[pkg.current].version,
                        )
                        state.marked_upgrade = newer >= 0
                        state.marked_downgrade = newer < 0
                        state.install_version = state.candidate
                case MarkAction.DELETE:
                    if pkg.current is None:
                        logger.warning(f"Ignoring delete mark for '{name}', it is not installed")
                        continue
                    state.marked_delete = True
                    state.install_version = None
                case MarkAction.REINSTALL:
                    if pkg.current is None:
                        logger.warning(f"Ignoring reinstall mark for '{name}', it is not installed")
                        continue
                    state.marked_reinstall = True
                case MarkAction.KEEP:
                    state.install_version = pkg.current

            state.marked_keep = not (
                state.marked_install or state.marked_upgrade or state.marked_downgrade or state.marked_delete
            )

    def _followed_types(self) -> set[DepType]:
        followed = {DepType.DEPENDS, DepType.PRE_DEPENDS}
        if self._config.install_recommends:
            followed.add(DepType.RECOMMENDS)
        if self._config.install_suggests:
            followed.add(DepType.SUGGESTS)
        return followed

    def _mark_and_sweep(self) -> None:
        followed = self._followed_types()
        reachable = [False] * len(self._states)
        stack = [
            pkg.id
            for pkg, state in zip(self._index.packages, self._states)
            if state.install_version is not None and (pkg.essential or not state.auto_installed)
        ]
        while stack:
            package_id = stack.pop()
            if reachable[package_id]:
                continue
            reachable[package_id] = True

            version_id = self._states[package_id].install_version
            for dep_type, group in self._index.versions[version_id].groups:
                if dep_type not in followed:
                    continue
                for dep in group:
                    for target_id in self._index.all_targets(dep, version_id):
                        target_pkg = self._index.versions[target_id].package
                        if self._states[target_pkg].install_version == target_id and not reachable[target_pkg]:
                            stack.append(target_pkg)

        for package_id, state in enumerate(self._states):
            state.garbage = state.install_version is not None and not reachable[package_id]

        if garbage := sum(state.garbage for state in self._states):
            logger.debug(f"{garbage} packages are no longer required")

    def _dep_satisfied(self, dep: BaseDepRecord, owner: int, installed: list[int | None]) -> bool:
        return any(
            installed[self._index.versions[target_id].package] == target_id
            for target_id in self._index.all_targets(dep, owner)
        )

    def _is_broken(self, version_id: int, installed: list[int | None]) -> bool:
        for dep_type, group in self._index.versions[version_id].groups:
            if not dep_type.is_critical:
                continue
            if dep_type.is_negative:
                if any(self._dep_satisfied(dep, version_id, installed) for dep in group):
                    return True
            elif not any(self._dep_satisfied(dep, version_id, installed) for dep in group):
                return True
        return False

    def _check_broken(self) -> None:
        now = [pkg.current for pkg in self._index.packages]
        inst = [state.install_version for state in self._states]
        for pkg, state in zip(self._index.packages, self._states):
            if pkg.current is not None:
                state.now_broken = self._is_broken(pkg.current, now)
            if state.install_version is not None:
                state.inst_broken = self._is_broken(state.install_version, inst)

    def changed(self) -> Iterable[tuple[int | None, int | None, PackageState]]:
        """Yield `(current, install_version, state)` for every package the marks touch."""
        for pkg, state in zip(self._index.packages, self._states):
            if state.install_version != pkg.current or state.marked_reinstall:
                yield pkg.current, state.install_version, state

    def disk_delta(self) -> int:
        """Net change of installed bytes if the marks were committed."""
        delta = 0
        for current, install, _ in self.changed():
            if install is not None:
                delta += self._index.versions[install].installed_size
            if current is not None:
                delta -= self._index.versions[current].installed_size
        return delta

    def download_size(self) -> int:
        total = 0
        for _, install, _ in self.changed():
            if install is not None and self._priorities[install] >= constants.PRIORITY_ARCHIVE:
                total += self._index.versions[install].size
        return total
