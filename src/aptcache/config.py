"""Configuration for opening a cache."""

from enum import StrEnum
from os import getenv
from pathlib import Path

from pydantic import BaseModel, Field

from aptcache import constants


class MarkAction(StrEnum):
    """Decision a prior dependency solve made for one package."""

    INSTALL = "install"
    DELETE = "delete"
    KEEP = "keep"
    REINSTALL = "reinstall"


class Configuration(BaseModel):
    """Where to find the metadata and how to interpret it.

    Relative paths are resolved against `root_dir`, mirroring APT's `Dir` option.
    """

    root_dir: Path = constants.ROOT_DIR
    sources_list: Path = constants.SOURCES_LIST
    sources_parts: Path = constants.SOURCES_PARTS
    lists_dir: Path = constants.LISTS_DIR
    status_file: Path = constants.STATUS_FILE
    extended_states: Path = constants.EXTENDED_STATES

    architecture: str = constants.NATIVE_ARCHITECTURE
    foreign_architectures: list[str] = Field(default_factory=list)

    install_recommends: bool = True
    install_suggests: bool = False
    marks: dict[str, MarkAction] = Field(default_factory=dict)

    max_workers: int = Field(default=constants.MAX_WORKERS, ge=1)
    timeout: float = 30.0

    @classmethod
    def from_env(cls, **overrides) -> "Configuration":
        """Build a configuration from the `APTCACHE_*` environment variables plus overrides.

        The environment is read at call time, so changes made after import are honoured.
        """
        values: dict = {}
        if root_dir := getenv("APTCACHE_ROOT_DIR"):
            values["root_dir"] = Path(root_dir).resolve()
        if architecture := getenv("APTCACHE_ARCHITECTURE"):
            values["architecture"] = architecture
        if max_workers := getenv("APTCACHE_MAX_WORKERS"):
            values["max_workers"] = max_workers
        values.update(overrides)
        return cls(**values)

    @property
    def architectures(self) -> list[str]:
        """Native architecture first, then foreign ones, without duplicates."""
        return list(dict.fromkeys([self.architecture, *self.foreign_architectures]))

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the root directory."""
        return path if path.is_absolute() else self.root_dir / path

    @property
    def sources_list_path(self) -> Path:
        return self.resolve(self.sources_list)

    @property
    def sources_parts_path(self) -> Path:
        return self.resolve(self.sources_parts)

    @property
    def lists_path(self) -> Path:
        return self.resolve(self.lists_dir)

    @property
    def status_path(self) -> Path:
        return self.resolve(self.status_file)

    @property
    def extended_states_path(self) -> Path:
        return self.resolve(self.extended_states)
