import logging

from rich.logging import RichHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)

from .cache import Cache, DiskSpace, Free, PackageSort, Require  # noqa: E402
from .config import Configuration, MarkAction  # noqa: E402
from .errors import AptCacheError, FetchError, MetadataError  # noqa: E402
from .models import BaseDep, Dependency, DepType, Package, SourceFile, Version, format_dependencies  # noqa: E402
from .progress import AptUpdateProgress, ItemStatus, UpdateProgress, Worker  # noqa: E402
from .utils import NumSys, time_str, unit_str  # noqa: E402

__all__ = [
    "AptCacheError",
    "AptUpdateProgress",
    "BaseDep",
    "Cache",
    "Configuration",
    "DepType",
    "Dependency",
    "DiskSpace",
    "FetchError",
    "Free",
    "ItemStatus",
    "MarkAction",
    "MetadataError",
    "NumSys",
    "Package",
    "PackageSort",
    "Require",
    "SourceFile",
    "UpdateProgress",
    "Version",
    "Worker",
    "format_dependencies",
    "time_str",
    "unit_str",
]
