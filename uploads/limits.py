"""
Platform upload size limits.

Limits are expressed the way server configs write them: a magnitude followed by
a unit suffix, e.g. ``"2M"`` or ``"1G"``.
"""

from __future__ import annotations

import re

DEFAULT_UPLOAD_MAX_FILESIZE = "2M"
DEFAULT_POST_MAX_SIZE = "8M"

_UNIT_MULTIPLIERS = {
    "G": 1024 * 1024 * 1024,
    "M": 1024 * 1024,
}
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def _parse_magnitude(value: str) -> int:
    match = _LEADING_INT.match(value)
    if match is None:
        return 1
    return int(match.group(1))


def parse_size_string(value: str) -> int:
    """
    Convert a size string to bytes.

    ``G`` and ``M`` suffixes scale the leading integer; any other suffix (or
    none) leaves it as a raw byte count. An unparseable magnitude counts as 1.
    """

    value = value.strip()
    multiplier = _UNIT_MULTIPLIERS.get(value[-1:], 1)
    return _parse_magnitude(value) * multiplier


def supported_max_upload_size(
    upload_max_filesize: str = DEFAULT_UPLOAD_MAX_FILESIZE,
    post_max_size: str = DEFAULT_POST_MAX_SIZE,
) -> int:
    """
    Largest upload accepted by the platform: a file must fit both the per-file
    limit and the request body limit.
    """

    return min(parse_size_string(upload_max_filesize), parse_size_string(post_max_size))
