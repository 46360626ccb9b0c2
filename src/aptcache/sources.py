"""Source list parsing and expansion into index targets."""

import logging
import re
from collections.abc import Iterator
from pathlib import Path

from debian import deb822
from pydantic import BaseModel

from aptcache.config import Configuration
from aptcache.errors import MetadataError
from aptcache.models.repository import SourceEntry, SourceFile
from aptcache.utils import uri_to_filename

logger = logging.getLogger(__name__)

_ONE_LINE_RE = re.compile(
    r"^(?P<type>[\w-]+)\s+(?:\[(?P<options>[^\]]*)\]\s+)?(?P<uri>\S+)\s+(?P<suite>\S+)(?:\s+(?P<components>.*))?$"
)
_SOURCE_TYPES = {"deb", "deb-src"}
_TRUE_VALUES = {"yes", "true", "1"}


class IndexTarget(BaseModel):
    """A `Packages` index of one source entry for one component and architecture."""

    entry: SourceEntry
    component: str | None
    architecture: str

    @property
    def release_key(self) -> str:
        """Name of the uncompressed index relative to the Release file."""
        if self.component is None:
            return "Packages"
        return f"{self.component}/binary-{self.architecture}/Packages"

    @property
    def uri(self) -> str:
        return self.entry.dist_uri + self.release_key

    @property
    def filename(self) -> str:
        return uri_to_filename(self.uri)

    @property
    def description(self) -> str:
        if self.component is None:
            return f"{self.entry.uri} {self.entry.suite} Packages"
        return f"{self.entry.uri} {self.entry.suite}/{self.component} {self.architecture} Packages"


def _parse_options(raw: str | None, path: Path, lineno: int) -> dict[str, list[str]]:
    options: dict[str, list[str]] = {}
    for token in (raw or "").split():
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise MetadataError(f"Malformed option '{token}' in entry {lineno} of {path}")
        options[key.lower()] = [v for v in value.split(",") if v]
    return options


def parse_one_line(text: str, path: Path) -> list[SourceEntry]:
    """Parse the classic one-line `sources.list` format.

    Args:
        text: The file contents
        path: The file the contents came from, used in error messages

    Returns:
        The entries in file order

    Raises:
        MetadataError: If a non-comment line cannot be parsed
    """
    entries: list[SourceEntry] = []
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue

        match = _ONE_LINE_RE.match(line)
        if match is None or match["type"] not in _SOURCE_TYPES:
            raise MetadataError(f"Malformed entry {lineno} in list file {path}")

        options = _parse_options(match["options"], path, lineno)
        suite = match["suite"]
        components = (match["components"] or "").split()
        if not suite.endswith("/") and not components:
            raise MetadataError(f"Malformed entry {lineno} in list file {path} (Component)")

        entries.append(
            SourceEntry(
                type=match["type"],
                uri=match["uri"],
                suite=suite,
                components=components,
                architectures=options.get("arch", []),
                trusted=options.get("trusted", ["no"])[0].lower() in _TRUE_VALUES,
                file=path,
                line=lineno,
            )
        )
    return entries


def parse_deb822(text: str, path: Path) -> list[SourceEntry]:
    """Parse the deb822 `.sources` format, expanding every type/URI/suite combination."""
    entries: list[SourceEntry] = []
    for index, paragraph in enumerate(deb822.Deb822.iter_paragraphs(text.splitlines()), start=1):
        if paragraph.get("Enabled", "yes").strip().lower() not in _TRUE_VALUES:
            logger.debug(f"Skipping disabled stanza {index} in {path}")
            continue

        types = paragraph.get("Types", "").split()
        uris = paragraph.get("URIs", "").split()
        suites = paragraph.get("Suites", "").split()
        if not types or not uris or not suites:
            raise MetadataError(f"Malformed stanza {index} in source file {path}")
        if unknown := set(types) - _SOURCE_TYPES:
            raise MetadataError(f"Unknown source types {sorted(unknown)} in stanza {index} of {path}")

        components = paragraph.get("Components", "").split()
        architectures = paragraph.get("Architectures", "").split()
        trusted = paragraph.get("Trusted", "no").strip().lower() in _TRUE_VALUES
        for source_type in types:
            for uri in uris:
                for suite in suites:
                    if not suite.endswith("/") and not components:
                        raise MetadataError(f"Malformed stanza {index} in source file {path} (Components)")
                    entries.append(
                        SourceEntry(
                            type=source_type,
                            uri=uri,
                            suite=suite,
                            components=components,
                            architectures=architectures,
                            trusted=trusted,
                            file=path,
                            line=index,
                        )
                    )
    return entries


class SourceList:
    """The configured metadata origins, in priority (file) order."""

    def __init__(self, entries: list[SourceEntry], architectures: list[str]):
        self.entries = entries
        self.architectures = architectures

    @classmethod
    def read(cls, config: Configuration) -> "SourceList":
        """Read `sources.list` and every `.list`/`.sources` file in `sources.list.d`.

        Raises:
            MetadataError: If a file is unreadable or malformed
        """
        files: list[Path] = []
        if config.sources_list_path.is_file():
            files.append(config.sources_list_path)
        parts = config.sources_parts_path
        if parts.is_dir():
            files.extend(sorted(p for p in parts.iterdir() if p.suffix in (".list", ".sources")))

        entries: list[SourceEntry] = []
        for path in files:
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise MetadataError(f"Unable to read source list {path}: {e}") from e
            parser = parse_deb822 if path.suffix == ".sources" else parse_one_line
            entries.extend(parser(text, path))

        logger.debug(f"Read {len(entries)} source entries from {len(files)} files")
        return cls(entries, config.architectures)

    @property
    def binary_entries(self) -> list[SourceEntry]:
        return [entry for entry in self.entries if entry.is_binary]

    def entry_architectures(self, entry: SourceEntry) -> list[str]:
        if entry.architectures:
            return [arch for arch in entry.architectures if arch in self.architectures]
        return list(self.architectures)

    def index_targets(self, entry: SourceEntry | None = None) -> Iterator[IndexTarget]:
        """Yield the `Packages` indexes of one entry, or of every binary entry."""
        for source in [entry] if entry is not None else self.binary_entries:
            components: list[str | None] = [None] if source.is_flat else list(source.components)
            for component in components:
                for arch in self.entry_architectures(source):
                    yield IndexTarget(entry=source, component=component, architecture=arch)
                    if component is None:
                        # flat repositories carry a single index for every architecture
                        break

    def source_files(self) -> Iterator[SourceFile]:
        """Yield every remote index file a refresh acquires."""
        for entry in self.binary_entries:
            yield SourceFile.from_uri(entry.release_uris()[0])
            for target in self.index_targets(entry):
                yield SourceFile.from_uri(target.uri)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SourceEntry]:
        return iter(self.entries)
