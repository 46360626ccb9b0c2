import hashlib
import lzma
from email.utils import formatdate
from pathlib import Path

import httpx
import pytest

from aptcache import Cache, Configuration, UpdateProgress
from aptcache.utils import uri_to_filename

MIRROR = "http://deb.example.org/debian"
SOURCES_LIST = f"""\
# test sources
deb {MIRROR} sid main contrib
deb-src {MIRROR} sid main
"""

PACKAGES = """\
Package: apt
Version: 2.7.0
Installed-Size: 4200
Maintainer: APT Development Team <deity@lists.debian.org>
Architecture: amd64
Replaces: apt-transport-https (<< 1.5~alpha4~), apt-utils (<< 1.3~exp2~)
Depends: gpgv | gpgv2 | gpgv1, libapt-pkg6.0 (>= 2.7.0), debian-archive-keyring, libc6 (>= 2.34)
Recommends: ca-certificates
Suggests: aptitude | synaptic, dpkg-dev (>= 1.17.2)
Breaks: apt-transport-https (<< 1.5~alpha4~), apt-utils (<< 1.3~exp2~)
Description: commandline package manager
 This package provides commandline tools for searching and
 managing as well as querying information about packages
 as a low-level access to all features of the libapt-pkg library.
 .
 These include apt-get and apt-cache.
Priority: required
Section: admin
Filename: pool/main/a/apt/apt_2.7.0_amd64.deb
Size: 1400000
MD5sum: 6c1b3a3b1f1b4b0e1c2d3e4f5a6b7c8d
SHA256: 0d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: libapt-pkg6.0
Source: apt
Version: 2.7.0
Installed-Size: 3300
Architecture: amd64
Multi-Arch: same
Depends: libc6 (>= 2.34)
Description: package management runtime library
 This library provides the common functionality for searching and
 managing packages as well as information about packages.
Section: libs
Priority: important
Filename: pool/main/a/apt/libapt-pkg6.0_2.7.0_amd64.deb
Size: 1000000
SHA256: 1d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: libc6
Source: glibc
Version: 2.37-1
Installed-Size: 12900
Architecture: amd64
Multi-Arch: same
Description: GNU C Library: Shared libraries
 Contains the standard libraries that are used by nearly all programs on
 the system.
Section: libs
Priority: optional
Filename: pool/main/g/glibc/libc6_2.37-1_amd64.deb
Size: 2800000
SHA256: 2d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: gpgv
Source: gnupg2
Version: 2.2.40-1
Installed-Size: 900
Architecture: amd64
Depends: libc6 (>= 2.34)
Description: GNU privacy guard - signature verification tool
 GnuPG is GNU's tool for secure communication and data storage.
Section: utils
Priority: important
Filename: pool/main/g/gnupg2/gpgv_2.2.40-1_amd64.deb
Size: 200000
SHA256: 3d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: debian-archive-keyring
Version: 2023.4
Installed-Size: 250
Architecture: all
Description: GnuPG archive keys of the Debian archive
 The Debian project digitally signs its Release files.
Section: misc
Priority: important
Filename: pool/main/d/debian-archive-keyring/debian-archive-keyring_2023.4_all.deb
Size: 160000
SHA256: 4d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: ca-certificates
Version: 20230311
Installed-Size: 380
Architecture: all
Description: Common CA certificates
 Contains the certificate authorities shipped with Mozilla's browser.
Section: misc
Priority: optional
Filename: pool/main/c/ca-certificates/ca-certificates_20230311_all.deb
Size: 150000
SHA256: 5d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: firefox-esr
Version: 115.3.0esr-1
Installed-Size: 240000
Architecture: amd64
Depends: libc6 (>= 2.34)
Provides: gnome-www-browser, www-browser
Description: Mozilla Firefox web browser - Extended Support Release (ESR)
 Firefox ESR is a powerful, extensible web browser with support for modern
 web application technologies.
Section: web
Priority: optional
Filename: pool/main/f/firefox-esr/firefox-esr_115.3.0esr-1_amd64.deb
Size: 60000000
SHA256: 6d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: lynx
Version: 2.9.0-1
Installed-Size: 2000
Architecture: amd64
Depends: libc6 (>= 2.34)
Provides: www-browser
Description: classic non-graphical (text-mode) web browser
 In use since 1992, Lynx is one of the oldest web browsers still
 maintained.
Section: web
Priority: optional
Filename: pool/main/l/lynx/lynx_2.9.0-1_amd64.deb
Size: 630000
SHA256: 7d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: aptitude
Version: 0.8.13-5
Installed-Size: 4300
Architecture: amd64
Depends: apt (>= 2.6), libc6 (>= 2.34)
Recommends: www-browser
Description: terminal-based package manager
 aptitude is a package manager with a number of useful features.
Section: admin
Priority: optional
Filename: pool/main/a/aptitude/aptitude_0.8.13-5_amd64.deb
Size: 1700000
SHA256: 8d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5

Package: libfoo1
Source: foo
Version: 1.0-1
Installed-Size: 50
Architecture: amd64
Description: example library nobody needs any more
 Left behind after its last reverse dependency went away.
Section: libs
Priority: optional
Filename: pool/main/f/foo/libfoo1_1.0-1_amd64.deb
Size: 20000
SHA256: 9d6c3a1e0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e5f60718293a4b5
"""

STATUS = """\
Package: apt
Status: install ok installed
Priority: required
Section: admin
Installed-Size: 4100
Architecture: amd64
Version: 2.6.1
Depends: gpgv | gpgv2, libapt-pkg6.0 (>= 2.6.1), debian-archive-keyring, libc6 (>= 2.34)
Description: commandline package manager
 This package provides commandline tools for searching and
 managing packages.

Package: libapt-pkg6.0
Status: install ok installed
Installed-Size: 3200
Architecture: amd64
Source: apt
Version: 2.6.1
Depends: libc6 (>= 2.34)
Description: package management runtime library
 This library provides the common functionality for managing packages.

Package: libc6
Status: install ok installed
Installed-Size: 12900
Architecture: amd64
Source: glibc
Version: 2.37-1
Description: GNU C Library: Shared libraries
 Contains the standard libraries that are used by nearly all programs on
 the system.

Package: gpgv
Status: install ok installed
Installed-Size: 900
Architecture: amd64
Source: gnupg2
Version: 2.2.40-1
Depends: libc6 (>= 2.34)
Description: GNU privacy guard - signature verification tool
 GnuPG is GNU's tool for secure communication and data storage.

Package: debian-archive-keyring
Status: install ok installed
Installed-Size: 250
Architecture: all
Version: 2023.4
Description: GnuPG archive keys of the Debian archive
 The Debian project digitally signs its Release files.

Package: lynx
Status: install ok installed
Installed-Size: 2000
Architecture: amd64
Version: 2.9.0-1
Depends: libc6 (>= 2.34)
Provides: www-browser
Description: classic non-graphical (text-mode) web browser
 In use since 1992, Lynx is one of the oldest web browsers still
 maintained.

Package: libfoo1
Status: install ok installed
Installed-Size: 50
Architecture: amd64
Source: foo
Version: 1.0-1
Description: example library nobody needs any more
 Left behind after its last reverse dependency went away.

Package: local-tool
Status: install ok installed
Installed-Size: 10
Architecture: amd64
Version: 0.3
Description: locally built helper
 Built from a private tree, not available from any archive.

Package: removed-tool
Status: deinstall ok config-files
Architecture: amd64
Version: 1.2-1
"""

EXTENDED_STATES = """\
Package: libapt-pkg6.0
Architecture: amd64
Auto-Installed: 1

Package: libc6
Architecture: amd64
Auto-Installed: 1

Package: gpgv
Architecture: amd64
Auto-Installed: 1

Package: debian-archive-keyring
Architecture: all
Auto-Installed: 1

Package: libfoo1
Architecture: amd64
Auto-Installed: 1
"""


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def make_release(files: dict[str, bytes], signed: bool = True) -> bytes:
    """Build an InRelease listing the given files by their Release-relative names."""
    checksums = "".join(f" {sha256(data)} {len(data):>8} {name}\n" for name, data in files.items())
    body = (
        "Origin: Debian\n"
        "Label: Debian\n"
        "Suite: unstable\n"
        "Codename: sid\n"
        "Date: Sat, 14 Oct 2023 08:14:22 UTC\n"
        "Architectures: amd64 arm64\n"
        "Components: main contrib non-free-firmware\n"
        "Description: Debian x.y Unstable - Not Released\n"
        f"SHA256:\n{checksums}"
    )
    if not signed:
        return body.encode()
    return (
        "-----BEGIN PGP SIGNED MESSAGE-----\n"
        "Hash: SHA512\n"
        "\n"
        f"{body}"
        "-----BEGIN PGP SIGNATURE-----\n"
        "\n"
        "iHUEARYKAB0WIQTEST0000000000000000000000000000000000AAoJEAAAAAAAAAA=\n"
        "=abcd\n"
        "-----END PGP SIGNATURE-----\n"
    ).encode()


def index_files() -> dict[str, bytes]:
    packages = PACKAGES.encode()
    return {
        "main/binary-amd64/Packages": packages,
        "main/binary-amd64/Packages.xz": lzma.compress(packages),
    }


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """A system root with sources configured but no lists downloaded yet."""
    (tmp_path / "etc/apt/sources.list.d").mkdir(parents=True)
    (tmp_path / "etc/apt/sources.list").write_text(SOURCES_LIST)
    (tmp_path / "var/lib/apt/lists").mkdir(parents=True)
    (tmp_path / "var/lib/dpkg").mkdir(parents=True)
    (tmp_path / "var/lib/dpkg/status").write_text(STATUS)
    (tmp_path / "var/lib/apt/extended_states").write_text(EXTENDED_STATES)
    return tmp_path


@pytest.fixture
def populated_root(root: Path) -> Path:
    """The same root after a successful refresh."""
    lists = root / "var/lib/apt/lists"
    (lists / uri_to_filename(f"{MIRROR}/dists/sid/InRelease")).write_bytes(make_release(index_files()))
    (lists / uri_to_filename(f"{MIRROR}/dists/sid/main/binary-amd64/Packages")).write_text(PACKAGES)
    return root


@pytest.fixture
def config_factory(root: Path):
    def factory(**overrides) -> Configuration:
        return Configuration(root_dir=root, architecture="amd64", max_workers=2, **overrides)

    return factory


@pytest.fixture
def config(populated_root: Path, config_factory) -> Configuration:
    return config_factory()


@pytest.fixture
def cache(config: Configuration) -> Cache:
    return Cache(config)


class RecordingProgress(UpdateProgress):
    """Keeps every event for assertions."""

    def __init__(self, interval: int = 0):
        self.interval = interval
        self.events: list[tuple] = []

    def pulse_interval(self) -> int:
        return self.interval

    def start(self) -> None:
        self.events.append(("start",))

    def hit(self, id: int, description: str) -> None:
        self.events.append(("hit", id, description))

    def fetch(self, id: int, description: str, file_size: int) -> None:
        self.events.append(("fetch", id, description, file_size))

    def fail(self, id: int, description: str, status, error_text: str) -> None:
        self.events.append(("fail", id, description, int(status), error_text))

    def pulse(self, workers, percent, total_bytes, current_bytes, current_cps) -> None:
        self.events.append(("pulse", len(workers), percent))

    def done(self) -> None:
        self.events.append(("done",))

    def stop(self, fetched_bytes: int, elapsed_time: int, current_cps: int, pending_errors: bool) -> None:
        self.events.append(("stop", fetched_bytes, pending_errors))

    def names(self) -> list[str]:
        return [event[0] for event in self.events if event[0] != "pulse"]

    def of(self, name: str) -> list[tuple]:
        return [event for event in self.events if event[0] == name]


class Mirror:
    """Serves an archive from memory through an `httpx.MockTransport`."""

    last_modified = formatdate(1697271262, usegmt=True)

    def __init__(self, files: dict[str, bytes] | None = None, release: bytes | None = None):
        self.files = {f"/debian/dists/sid/{name}": data for name, data in (files or index_files()).items()}
        self.files["/debian/dists/sid/InRelease"] = release if release is not None else make_release(index_files())
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        data = self.files.get(request.url.path)
        if data is None:
            return httpx.Response(404)
        if "If-Modified-Since" in request.headers:
            return httpx.Response(304)
        return httpx.Response(200, content=data, headers={"Last-Modified": self.last_modified})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def mirror() -> Mirror:
    return Mirror()
