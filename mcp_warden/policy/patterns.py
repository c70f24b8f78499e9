"""Name patterns used by profile allow/deny lists.

* ``*`` or ``**`` on its own matches every name.
* A pattern equal to the name always matches.
* A pattern containing ``**`` is a prefix test (``fs_**``), a suffix test
  (``**_file``) or both (``read_**_v2``).
* Any other pattern containing ``*`` is a single-segment glob: ``*`` and
  ``?`` never cross a ``/``, so ``docs/*`` matches ``docs/a`` but not
  ``docs/a/b``.
* A pattern without ``*`` matches only the identical name; ``?`` and
  ``[...]`` in it are literal characters.

Globs use :mod:`fnmatch` syntax: ``[!a]`` negates a class (``[^a]`` does
not) and there is no backslash escape; wrap a special character in a class
instead, e.g. ``[*]``.

Malformed patterns match nothing and never raise.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Iterable

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "/"
DOUBLE_STAR = "**"


def _is_malformed(pattern: str) -> bool:
    """Unterminated character classes are rejected."""
    depth_start = -1
    for idx, ch in enumerate(pattern):
        if ch == "[" and depth_start < 0:
            depth_start = idx
        elif ch == "]" and depth_start >= 0 and idx > depth_start + 1:
            depth_start = -1
    return depth_start >= 0


def _glob_match(name: str, pattern: str) -> bool:
    if _is_malformed(pattern):
        logger.debug("Ignoring malformed pattern %r", pattern)
        return False
    name_parts = name.split(SEGMENT_SEPARATOR)
    pattern_parts = pattern.split(SEGMENT_SEPARATOR)
    if len(name_parts) != len(pattern_parts):
        return False
    return all(fnmatch.fnmatchcase(n, p) for n, p in zip(name_parts, pattern_parts))


def match_pattern(name: str, pattern: str) -> bool:
    """Return ``True`` if *name* matches *pattern*."""
    if pattern in ("*", DOUBLE_STAR) or pattern == name:
        return True

    if DOUBLE_STAR in pattern:
        if pattern.endswith(DOUBLE_STAR):
            return name.startswith(pattern[: -len(DOUBLE_STAR)])
        if pattern.startswith(DOUBLE_STAR):
            return name.endswith(pattern[len(DOUBLE_STAR):])
        prefix, _, suffix = pattern.partition(DOUBLE_STAR)
        return (
            len(name) >= len(prefix) + len(suffix)
            and name.startswith(prefix)
            and name.endswith(suffix)
        )

    if "*" not in pattern:
        return False

    try:
        return _glob_match(name, pattern)
    except Exception:  # noqa: BLE001 - a bad pattern must never fail a request
        logger.debug("Pattern %r raised during matching", pattern, exc_info=True)
        return False


def match_any(name: str, patterns: Iterable[str]) -> bool:
    return any(match_pattern(name, pat) for pat in patterns)
