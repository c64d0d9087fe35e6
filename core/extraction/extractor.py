"""Field extraction with before/after/occurrence anchors or a regex override."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from core.extraction.models import ExtractionReport, FieldOutcome
from core.patterns.models import FieldDefinition, Pattern
from core.patterns.regex import compile_user_regex
from core.utils.errors import PatternError

logger = logging.getLogger("postsmith.extraction")

_KEY_STRIP_RE = re.compile(r"[^\w\s-]")


def extract_field(text: str, field: FieldDefinition) -> str | None:
    """Extract one field value from ``text``.

    Returns ``None`` when the value is not found. Raises ``PatternError`` when
    the field's regex override is malformed.
    """

    return extract_with_pattern(text, field.pattern, field_id=field.id)


def extract_with_pattern(text: str, pattern: Pattern, *, field_id: str | None = None) -> str | None:
    if pattern.regex:
        return _extract_regex(text, pattern.regex, field_id)
    return _extract_anchored(text, pattern)


def extract_fields(text: str, fields: Iterable[FieldDefinition]) -> ExtractionReport:
    """Run every field against ``text`` and collect per-field outcomes."""

    report = ExtractionReport()
    for field in fields:
        report.outcomes.append(extract_outcome(text, field))
    return report


def extract_outcome(text: str, field: FieldDefinition) -> FieldOutcome:
    try:
        value = extract_field(text, field)
    except PatternError as exc:
        logger.warning("pattern error for field %s: %s", field.id, exc)
        return FieldOutcome(field_id=field.id, status="pattern_error", message=str(exc))

    if value is None:
        return FieldOutcome(field_id=field.id, status="not_found")
    return FieldOutcome(field_id=field.id, status="found", value=value)


def count_occurrences(text: str, needle: str) -> int:
    """Count non-overlapping occurrences of ``needle`` scanning from the start."""

    if not needle:
        return 0
    return text.count(needle)


def sanitize_key(value: str) -> str:
    """Normalize a primary-key value: ``&`` -> ``and``, drop punctuation, trim."""

    return _KEY_STRIP_RE.sub("", value.replace("&", "and")).strip()


def _extract_regex(text: str, raw_regex: str, field_id: str | None) -> str | None:
    compiled = compile_user_regex(raw_regex, field_id=field_id)
    match = compiled.search(text)
    if match is None:
        return None

    value = match.group(1) if compiled.groups >= 1 and match.group(1) else match.group(0)
    return value.strip() or None


def _extract_anchored(text: str, pattern: Pattern) -> str | None:
    before = pattern.before
    after = pattern.after
    if not before and not after:
        return None

    start = 0
    if before:
        position = -1
        cursor = 0
        for _ in range(pattern.occurrence):
            position = text.find(before, cursor)
            if position == -1:
                return None
            cursor = position + len(before)
        start = cursor

    # Without an after anchor the value stops at the next before anchor.
    stop = after or before
    end = len(text)
    after_position = text.find(stop, start)
    if after_position != -1:
        end = after_position

    value = text[start:end].strip()
    return value or None
