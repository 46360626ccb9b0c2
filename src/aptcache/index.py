"""In-memory arena of package and version records built from lists and the status database."""

import gzip
import logging
import lzma
from collections.abc import Iterator
from dataclasses import dataclass, field
from functools import cmp_to_key
from pathlib import Path
from typing import Any

from debian import deb822
from debian.debian_support import Version as DebianVersion
from debian.debian_support import version_compare

from aptcache.errors import MetadataError
from aptcache.models.dependency import DepType
from aptcache.models.package import CurrentState, InstState, SelectedState
from aptcache.models.repository import PackageFile

logger = logging.getLogger(__name__)

_HASH_FIELDS = {"MD5sum": "md5sum", "SHA1": "sha1", "SHA256": "sha256", "SHA512": "sha512"}

_SELECTED_STATES = {
    "unknown": SelectedState.UNKNOWN,
    "install": SelectedState.INSTALL,
    "hold": SelectedState.HOLD,
    "deinstall": SelectedState.DEINSTALL,
    "purge": SelectedState.PURGE,
}
_INST_STATES = {
    "ok": InstState.OK,
    "reinstreq": InstState.REINSTREQ,
}
_CURRENT_STATES = {
    "not-installed": CurrentState.NOT_INSTALLED,
    "unpacked": CurrentState.UNPACKED,
    "half-configured": CurrentState.HALF_CONFIGURED,
    "half-installed": CurrentState.HALF_INSTALLED,
    "config-files": CurrentState.CONFIG_FILES,
    "installed": CurrentState.INSTALLED,
    "triggers-awaited": CurrentState.TRIGGERS_AWAITED,
    "triggers-pending": CurrentState.TRIGGERS_PENDING,
}


@dataclass(slots=True)
class BaseDepRecord:
    name: str
    arch: str | None
    comp: str
    version: str
    dep_type: DepType
    target: int = -1


@dataclass(slots=True)
class VersionRecord:
    id: int
    package: int
    version: str
    arch: str
    section: str | None
    priority_str: str | None
    source_name: str
    source_version: str
    size: int
    installed_size: int
    summary: str
    description: str
    multi_arch: str | None
    hashes: dict[str, str]
    groups: list[tuple[DepType, list[BaseDepRecord]]]
    provides: list[tuple[str, str | None]]
    # (package file index, pool file name relative to the archive root)
    files: list[tuple[int, str | None]] = field(default_factory=list)


@dataclass(slots=True)
class PackageRecord:
    id: int
    name: str
    arch: str
    versions: list[int] = field(default_factory=list)
    current: int | None = None
    # (providing version id, provided version or None)
    provides: list[tuple[int, str | None]] = field(default_factory=list)
    selected_state: SelectedState = SelectedState.UNKNOWN
    inst_state: InstState = InstState.OK
    current_state: CurrentState = CurrentState.NOT_INSTALLED
    essential: bool = False
    auto_installed: bool = False


def compare_versions(left: str, right: str) -> int:
    """Compare two Debian version strings, returning -1, 0 or 1."""
    result = version_compare(left, right)
    return (result > 0) - (result < 0)


def version_satisfies(version: str, comp: str, target: str) -> bool:
    """Check `version comp target`, e.g. `version_satisfies("2.0", ">=", "1.0")`."""
    if not comp:
        return True
    try:
        result = compare_versions(version, target)
    except ValueError:
        logger.debug(f"Invalid version in relation: '{comp} {target}'")
        return False
    match comp:
        case "<<":
            return result < 0
        case "<=" | "<":
            return result <= 0
        case "=":
            return result == 0
        case ">=" | ">":
            return result >= 0
        case ">>":
            return result > 0
        case "!=":
            return result != 0
        case _:
            logger.debug(f"Unknown comparison operator '{comp}'")
            return False


def iter_packages_entries(local_path: Path) -> Iterator[dict]:
    """Stream package entries from a Packages[.gz|.xz] or status file."""

    def _open_text_stream():
        match local_path.suffix:
            case ".gz":
                return gzip.open(local_path, "rt", encoding="utf-8", errors="replace")
            case ".xz":
                return lzma.open(local_path, "rt", encoding="utf-8", errors="replace")
        return local_path.open("rt", encoding="utf-8", errors="replace")

    try:
        with _open_text_stream() as handle:
            for paragraph in deb822.Packages.iter_paragraphs(handle, use_apt_pkg=False):
                yield dict(paragraph)
    except (OSError, EOFError, lzma.LZMAError) as e:
        raise MetadataError(f"Unable to read {local_path}: {e}") from e


def parse_release_file(path: Path) -> deb822.Release:
    """Parse an InRelease or Release file, dropping any inline signature.

    Raises:
        MetadataError: If the file is unreadable or holds no fields
    """
    try:
        raw = path.read_bytes()
        _, payload, _ = deb822.Deb822.split_gpg_and_payload(raw.splitlines())
    except (OSError, EOFError) as e:
        raise MetadataError(f"Unable to read Release file {path}: {e}") from e

    release = deb822.Release(b"\n".join(payload).decode("utf-8", errors="replace"))
    if not release:
        raise MetadataError(f"Release file {path} is corrupt")
    return release


def release_hashes(release: deb822.Release) -> dict[str, tuple[str, int]]:
    """Map each file listed in a Release to its SHA256 and size."""
    hashes: dict[str, tuple[str, int]] = {}
    for entry in release.get("SHA256", []):
        try:
            hashes[entry["name"]] = (entry["sha256"], int(entry["size"]))
        except (KeyError, ValueError):
            logger.debug(f"Ignoring malformed Release checksum entry: {entry}")
    return hashes


def _split_description(raw: str | None) -> tuple[str, str]:
    """Split a Description field into its summary line and the full long description.

    Like APT's long description, the full text starts with the summary line, so the
    two never compare equal. A field without an extended body has no long description.
    """
    if not raw:
        return "", ""
    first, _, rest = raw.partition("\n")
    summary = first.strip()
    lines = []
    for line in rest.splitlines():
        line = line[1:] if line.startswith(" ") else line
        lines.append("" if line.strip() == "." else line)
    body = "\n".join(lines).strip("\n")
    return summary, f"{summary}\n{body}" if body else ""


def _parse_size(entry: dict[str, Any], key: str, path: Path) -> int:
    value = entry.get(key)
    if value in (None, ""):
        return 0
    try:
        return int(value)
    except ValueError as e:
        raise MetadataError(f"Invalid {key} '{value}' for {entry.get('Package')} in {path}") from e


def _parse_relations(raw: str, dep_type: DepType) -> list[list[BaseDepRecord]]:
    groups = []
    for alternatives in deb822.PkgRelation.parse_relations(raw):
        group = []
        for rel in alternatives:
            comp, version = rel.get("version") or ("", "")
            group.append(
                BaseDepRecord(
                    name=rel["name"],
                    arch=rel.get("archqual"),
                    comp=comp,
                    version=version,
                    dep_type=dep_type,
                )
            )
        if group:
            groups.append(group)
    return groups


class PackageIndex:
    """Owns every package, version and package file record of one cache build."""

    def __init__(self, architecture: str):
        self.architecture = architecture
        self.packages: list[PackageRecord] = []
        self.versions: list[VersionRecord] = []
        self.package_files: list[PackageFile] = []
        self._by_key: dict[tuple[str, str], int] = {}
        self._by_name: dict[str, list[int]] = {}
        self._targets: dict[int, tuple[int, ...]] = {}

    def find(self, name: str, arch: str | None = None) -> int | None:
        """Find a package id; without an architecture prefer the native one."""
        if arch is not None:
            return self._by_key.get((name, arch))
        if (pkg_id := self._by_key.get((name, self.architecture))) is not None:
            return pkg_id
        candidates = self._by_name.get(name)
        return candidates[0] if candidates else None

    def _get_or_create(self, name: str, arch: str) -> int:
        if (pkg_id := self._by_key.get((name, arch))) is not None:
            return pkg_id
        pkg_id = len(self.packages)
        self.packages.append(PackageRecord(id=pkg_id, name=name, arch=arch))
        self._by_key[(name, arch)] = pkg_id
        self._by_name.setdefault(name, []).append(pkg_id)
        return pkg_id

    def _package_arch(self, arch: str | None) -> str:
        return self.architecture if arch in (None, "", "all") else arch

    def _find_version(self, pkg: PackageRecord, version: str, arch: str) -> VersionRecord | None:
        for version_id in pkg.versions:
            record = self.versions[version_id]
            if record.version == version and record.arch == arch:
                return record
        return None

    def _new_version(self, pkg: PackageRecord, entry: dict[str, Any], path: Path) -> VersionRecord:
        summary, description = _split_description(entry.get("Description"))
        source_name, _, source_version = (entry.get("Source") or entry["Package"]).partition(" ")
        groups: list[tuple[DepType, list[BaseDepRecord]]] = []
        for dep_type in DepType:
            if raw := entry.get(dep_type.field_name):
                groups.extend((dep_type, group) for group in _parse_relations(raw, dep_type))

        provides: list[tuple[str, str | None]] = []
        if raw := entry.get("Provides"):
            for alternatives in deb822.PkgRelation.parse_relations(raw):
                for rel in alternatives:
                    provided = rel.get("version")
                    provides.append((rel["name"], provided[1] if provided else None))

        record = VersionRecord(
            id=len(self.versions),
            package=pkg.id,
            version=entry["Version"],
            arch=entry.get("Architecture") or pkg.arch,
            section=entry.get("Section"),
            priority_str=entry.get("Priority"),
            source_name=source_name,
            source_version=source_version.strip("()") or entry["Version"],
            size=_parse_size(entry, "Size", path),
            installed_size=_parse_size(entry, "Installed-Size", path) * 1024,
            summary=summary,
            description=description,
            multi_arch=entry.get("Multi-Arch"),
            hashes={key: entry[name] for name, key in _HASH_FIELDS.items() if entry.get(name)},
            groups=groups,
            provides=provides,
        )
        self.versions.append(record)
        pkg.versions.append(record.id)
        return record

    def _add_entry(self, entry: dict[str, Any], file_index: int, path: Path) -> tuple[PackageRecord, VersionRecord]:
        name, version = entry.get("Package"), entry.get("Version")
        if not name or not version:
            raise MetadataError(f"Entry without Package or Version field in {path}")
        try:
            DebianVersion(version)
        except ValueError as e:
            raise MetadataError(f"Invalid version '{version}' for {name} in {path}") from e

        arch = entry.get("Architecture") or self.architecture
        pkg = self.packages[self._get_or_create(name, self._package_arch(arch))]
        if entry.get("Essential", "").lower() == "yes":
            pkg.essential = True

        record = self._find_version(pkg, version, arch) or self._new_version(pkg, entry, path)
        record.files.append((file_index, entry.get("Filename")))
        return pkg, record

    def add_package_file(self, package_file: PackageFile) -> int:
        self.package_files.append(package_file)
        return len(self.package_files) - 1

    def load_packages_file(self, path: Path, package_file: PackageFile) -> int:
        """Load every paragraph of a downloaded Packages index.

        Returns:
            The number of entries read
        """
        file_index = self.add_package_file(package_file)
        count = 0
        for entry in iter_packages_entries(path):
            self._add_entry(entry, file_index, path)
            count += 1
        logger.debug(f"Loaded {count} entries from {path}")
        return count

    def load_status(self, path: Path, package_file: PackageFile) -> int:
        """Load the dpkg status database, setting installed versions and dpkg states."""
        file_index = self.add_package_file(package_file)
        count = 0
        for entry in iter_packages_entries(path):
            name = entry.get("Package")
            want, _, rest = (entry.get("Status") or "").partition(" ")
            flag, _, state = rest.partition(" ")
            current_state = _CURRENT_STATES.get(state.strip())
            if not name or current_state is None:
                raise MetadataError(f"Malformed status entry '{name}' in {path}")

            if current_state in (CurrentState.NOT_INSTALLED, CurrentState.CONFIG_FILES):
                pkg = self.packages[self._get_or_create(name, self._package_arch(entry.get("Architecture")))]
            else:
                pkg, record = self._add_entry(entry, file_index, path)
                pkg.current = record.id
            pkg.selected_state = _SELECTED_STATES.get(want, SelectedState.UNKNOWN)
            pkg.inst_state = _INST_STATES.get(flag, InstState.OK)
            pkg.current_state = current_state
            count += 1
        logger.debug(f"Loaded {count} status entries from {path}")
        return count

    def load_extended_states(self, path: Path) -> None:
        """Apply APT's auto-installed flags."""
        for entry in iter_packages_entries(path):
            if entry.get("Auto-Installed", "0").strip() != "1":
                continue
            pkg_id = self.find(entry.get("Package", ""), self._package_arch(entry.get("Architecture")))
            if pkg_id is not None:
                self.packages[pkg_id].auto_installed = True

    def finish(self) -> None:
        """Resolve dependency targets, build the provides index and order versions newest first."""
        for record in self.versions:
            owner_arch = self.packages[record.package].arch
            for _, group in record.groups:
                for dep in group:
                    match dep.arch:
                        case None | "any":
                            arch = owner_arch
                        case "native":
                            arch = self.architecture
                        case _:
                            arch = dep.arch
                    dep.target = self._get_or_create(dep.name, arch)
            for name, provided_version in record.provides:
                pkg_id = self._get_or_create(name, owner_arch)
                self.packages[pkg_id].provides.append((record.id, provided_version))

        newest_first = cmp_to_key(lambda a, b: compare_versions(self.versions[b].version, self.versions[a].version))
        for pkg in self.packages:
            pkg.versions.sort(key=newest_first)

    def all_targets(self, dep: BaseDepRecord, owner: int) -> tuple[int, ...]:
        """Version ids satisfying one base dependency, including providers."""
        key = id(dep)
        if (cached := self._targets.get(key)) is not None:
            return cached

        owner_pkg = self.versions[owner].package
        target = self.packages[dep.target]
        result: list[int] = []
        for version_id in target.versions:
            if dep.dep_type.is_negative and target.id == owner_pkg:
                continue
            if version_satisfies(self.versions[version_id].version, dep.comp, dep.version):
                result.append(version_id)
        for version_id, provided_version in target.provides:
            if dep.dep_type.is_negative and self.versions[version_id].package == owner_pkg:
                continue
            if not dep.comp or (
                provided_version is not None and version_satisfies(provided_version, dep.comp, dep.version)
            ):
                result.append(version_id)

        if not result and dep.dep_type.is_positive:
            owner_record = self.versions[owner]
            logger.debug(
                f"{self.packages[owner_pkg].name} {owner_record.version} has unsatisfiable "
                f"{dep.dep_type.field_name} on {dep.name}"
            )
        self._targets[key] = cached = tuple(result)
        return cached
