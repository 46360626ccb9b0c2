import datetime
import logging
from enum import StrEnum
from urllib.parse import urlsplit

from dateutil.parser import parse as parse_date

logger = logging.getLogger(__name__)

# characters APT percent-encodes when flattening a URI into a list file name
_QUOTED_CHARS = frozenset('\\|{}[]<>"^~_=!@#$%^&*')


class NumSys(StrEnum):
    """Unit system used when rendering byte counts."""

    BINARY = "binary"
    DECIMAL = "decimal"


def try_parse_date(date_str: str | None) -> datetime.datetime | None:
    """Try to parse a date string into a timestamp.

    Args:
        date_str: The date string to parse (e.g., from HTTP Last-Modified header)

    Returns:
        The parsed timestamp, or None if parsing failed or date_str is None
    """

    try:
        return parse_date(date_str) if date_str else None
    except Exception as e:
        logger.debug(f"Failed to parse date '{date_str}': {e}")
        return None


def unit_str(value: int, base: NumSys = NumSys.DECIMAL) -> str:
    """Render a byte count as a human readable string.

    Args:
        value: Number of bytes
        base: `NumSys.BINARY` for 1024-based units, `NumSys.DECIMAL` for 1000-based units

    Returns:
        The value with two decimals and a unit suffix, or a plain integer with a "B" suffix
        when it does not exceed one kilo unit.

    Examples:
        >>> unit_str(1536, NumSys.BINARY)
        '1.50 KiB'
        >>> unit_str(1024, NumSys.BINARY)
        '1024 B'
    """
    match base:
        case NumSys.BINARY:
            num, units = 1024, ("KiB", "MiB", "GiB", "TiB")
        case NumSys.DECIMAL:
            num, units = 1000, ("KB", "MB", "GB", "TB")
        case _:
            raise ValueError(f"Unknown unit system: {base}")

    for exp in range(len(units), 0, -1):
        if value > num**exp:
            return f"{value / num**exp:.2f} {units[exp - 1]}"
    return f"{value} B"


def time_str(seconds: int) -> str:
    """Render a duration in seconds the way APT prints elapsed times."""
    days, rem = divmod(int(seconds), 60 * 60 * 24)
    hours, rem = divmod(rem, 60 * 60)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}min {secs}s"
    if hours:
        return f"{hours}h {minutes}min {secs}s"
    if minutes:
        return f"{minutes}min {secs}s"
    return f"{secs}s"


def uri_to_filename(uri: str) -> str:
    """Flatten a URI into the file name APT uses under its lists directory.

    Credentials and the scheme are dropped, unsafe characters are percent-encoded
    and path separators become underscores.

    Examples:
        >>> uri_to_filename("http://deb.debian.org/debian/dists/sid/InRelease")
        'deb.debian.org_debian_dists_sid_InRelease'
    """
    parts = urlsplit(uri)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    flat = host + parts.path
    quoted = "".join(
        f"%{ord(ch):02x}" if ch in _QUOTED_CHARS or ord(ch) <= 0x20 or ord(ch) >= 0x7F else ch
        for ch in flat
    )
    return quoted.replace("/", "_")
