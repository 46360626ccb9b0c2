import platform
from os import getenv
from pathlib import Path

# root of the system whose metadata is indexed; tests and chroots point this elsewhere
ROOT_DIR = Path(getenv("APTCACHE_ROOT_DIR", "/")).resolve()

# dpkg architecture names for the machine types Python reports
MACHINE_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "i386",
    "i486": "i386",
    "i586": "i386",
    "i686": "i386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armhf",
    "armv6l": "armel",
    "riscv64": "riscv64",
    "ppc64le": "ppc64el",
    "s390x": "s390x",
    "mips64": "mips64el",
    "loongarch64": "loong64",
}

NATIVE_ARCHITECTURE = getenv("APTCACHE_ARCHITECTURE") or MACHINE_ARCHITECTURES.get(
    platform.machine().lower(), "amd64"
)

# overridden by APTCACHE_MAX_WORKERS through Configuration.from_env
MAX_WORKERS = 4

# APT's compiled-in locations, relative to ROOT_DIR
SOURCES_LIST = Path("etc/apt/sources.list")
SOURCES_PARTS = Path("etc/apt/sources.list.d")
LISTS_DIR = Path("var/lib/apt/lists")
STATUS_FILE = Path("var/lib/dpkg/status")
EXTENDED_STATES = Path("var/lib/apt/extended_states")

# pin priorities used by the candidate policy
PRIORITY_ARCHIVE = 500
PRIORITY_INSTALLED = 100

# index compression suffixes in order of preference
INDEX_SUFFIXES = (".xz", ".gz", "")
LEGACY_INDEX_SUFFIXES = (".gz", "")

USER_AGENT = "aptcache (python-httpx)"
