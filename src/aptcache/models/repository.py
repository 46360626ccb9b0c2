"""Models describing where package metadata comes from."""

from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, computed_field

from aptcache.utils import uri_to_filename

PACKAGE_INDEX_TYPE = "Debian Package Index"
STATUS_INDEX_TYPE = "Debian dpkg status file"


class SourceEntry(BaseModel):
    """One origin from the source list: a single type, URI and suite."""

    type: str
    uri: str
    suite: str
    components: list[str] = Field(default_factory=list)
    architectures: list[str] = Field(default_factory=list)
    trusted: bool = False
    file: Path | None = Field(default=None, repr=False)
    line: int | None = Field(default=None, repr=False)

    @computed_field
    @property
    def is_binary(self) -> bool:
        return self.type == "deb"

    @computed_field
    @property
    def is_flat(self) -> bool:
        """Flat repositories name a directory instead of a suite under dists/."""
        return self.suite.endswith("/")

    @property
    def base_uri(self) -> str:
        return self.uri if self.uri.endswith("/") else f"{self.uri}/"

    @property
    def dist_uri(self) -> str:
        """URI of the directory holding the Release files."""
        if self.is_flat:
            suite = self.suite.removeprefix("./")
            return self.base_uri + suite
        return f"{self.base_uri}dists/{self.suite}/"

    @property
    def site(self) -> str:
        return urlsplit(self.uri).hostname or ""

    def release_uris(self) -> list[str]:
        """Signed InRelease first, then the unsigned Release fallback."""
        return [f"{self.dist_uri}InRelease", f"{self.dist_uri}Release"]

    def release_description(self) -> str:
        return f"{self.uri} {self.suite} InRelease"

    def __str__(self) -> str:
        return " ".join([self.type, self.uri, self.suite, *self.components])


class SourceFile(BaseModel):
    """A remote index file together with the list file name it is stored under."""

    uri: str
    filename: str

    @classmethod
    def from_uri(cls, uri: str) -> "SourceFile":
        return cls(uri=uri, filename=uri_to_filename(uri))


class PackageFile(BaseModel):
    """A local file versions were read from: a downloaded index or the dpkg status file."""

    filename: Path
    index_type: str
    archive: str | None = None
    origin: str | None = None
    codename: str | None = None
    label: str | None = None
    site: str | None = None
    component: str | None = None
    arch: str | None = None
    is_trusted: bool = False
    base_uri: str | None = Field(default=None, repr=False)

    @computed_field
    @property
    def is_status_file(self) -> bool:
        return self.index_type == STATUS_INDEX_TYPE
