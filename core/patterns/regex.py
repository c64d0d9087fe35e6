"""Compilation of user-authored regex overrides."""

from __future__ import annotations

import re
from functools import lru_cache

from core.utils.errors import PatternError

# Browser-dialect named groups, e.g. "(?<platform>Win\d+)"; lookbehinds start with "(?<=" / "(?<!".
_BROWSER_NAMED_GROUP_RE = re.compile(r"(?<!\\)\(\?<(?![=!])([A-Za-z_]\w*)>")


def normalize_regex(pattern: str) -> str:
    """Rewrite ``(?<name>...)`` groups to Python's ``(?P<name>...)`` form."""

    return _BROWSER_NAMED_GROUP_RE.sub(r"(?P<\1>", pattern)


def compile_user_regex(pattern: str, *, field_id: str | None = None) -> re.Pattern[str]:
    """Compile a stored regex override, raising ``PatternError`` when malformed."""

    try:
        return _compile_cached(normalize_regex(pattern))
    except re.error as exc:
        raise PatternError(
            f"Invalid regex {pattern!r}: {exc}", pattern=pattern, field_id=field_id
        ) from exc


@lru_cache(maxsize=256)
def _compile_cached(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)
