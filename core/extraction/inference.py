"""Pattern inference from a highlighted text span.

Boundary heuristics are ordered rule lists evaluated first-match-wins. Each
rule pairs a finder with the inference modes it applies to, so new delimiter
heuristics are added by extending ``BEFORE_RULES`` / ``AFTER_RULES``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import cast, get_args

from core.config.loader import load_inference_config
from core.config.models import InferenceConfig
from core.extraction.extractor import count_occurrences
from core.patterns.models import InferenceMode, InferredPattern

SUPPORTED_MODES: tuple[str, ...] = get_args(InferenceMode)
_ALL_MODES = frozenset(SUPPORTED_MODES)
_ID_STRIP_RE = re.compile(r"[^a-zA-Z0-9\s]")


@dataclass(frozen=True)
class BoundaryMatch:
    delimiter: str
    confidence: int
    occurrence: int | None = None


BoundaryFinder = Callable[[str, InferenceConfig], BoundaryMatch | None]


@dataclass(frozen=True)
class BoundaryRule:
    name: str
    find: BoundaryFinder
    modes: frozenset[str] = _ALL_MODES


def infer_pattern(
    full_text: str,
    selection_start: int,
    selection_end: int,
    mode: str = "auto",
    config: InferenceConfig | None = None,
) -> InferredPattern:
    """Infer before/after/occurrence anchors that re-extract the selected span.

    Pure and deterministic for identical inputs.
    """

    if mode not in _ALL_MODES:
        raise ValueError(f"Unsupported inference mode: {mode}")
    if not 0 <= selection_start <= selection_end <= len(full_text):
        raise ValueError(
            f"Invalid selection [{selection_start}, {selection_end}) "
            f"for text of length {len(full_text)}"
        )

    typed_mode = cast(InferenceMode, mode)
    selected = full_text[selection_start:selection_end]
    suggested_id = suggest_field_id(selected)
    suggested_label = suggest_label(selected)

    if typed_mode == "regex":
        return InferredPattern(
            before="",
            after="",
            occurrence=1,
            confidence=0,
            mode=typed_mode,
            suggested_id=suggested_id,
            suggested_label=suggested_label,
        )

    effective = config or load_inference_config()
    prefix = full_text[:selection_start]
    suffix = full_text[selection_end:]

    before = _first_match(BEFORE_RULES, prefix, effective, typed_mode)
    after = _first_match(AFTER_RULES, suffix, effective, typed_mode)
    occurrence = before.occurrence or max(1, count_occurrences(prefix, before.delimiter))

    return InferredPattern(
        before=before.delimiter,
        after=after.delimiter,
        occurrence=occurrence,
        confidence=min(before.confidence, after.confidence),
        mode=typed_mode,
        suggested_id=suggested_id,
        suggested_label=suggested_label,
    )


def suggest_field_id(text: str) -> str:
    """camelCase id from the first three words of ``text``."""

    cleaned = _ID_STRIP_RE.sub("", text).strip().lower()
    if not cleaned:
        return "field"
    words = cleaned.split()[:3]
    return words[0] + "".join(word[:1].upper() + word[1:] for word in words[1:])


def suggest_label(text: str) -> str:
    """Title-cased label from the first four words of ``text``."""

    words = _ID_STRIP_RE.sub(" ", text).split()[:4]
    if not words:
        return "Field"
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def _first_match(
    rules: Sequence[BoundaryRule], text: str, config: InferenceConfig, mode: str
) -> BoundaryMatch:
    for rule in rules:
        if mode not in rule.modes:
            continue
        match = rule.find(text, config)
        if match is not None:
            return match
    raise RuntimeError("Boundary rule list must end with an unconditional fallback")


def _tag_alternation(config: InferenceConfig) -> str:
    return "|".join(re.escape(tag) for tag in config.markup_tags)


def _before_open_tag(prefix: str, config: InferenceConfig) -> BoundaryMatch | None:
    match = re.search(
        rf"(\[(?:{_tag_alternation(config)})(?:=[^\]]*)?\])$", prefix, re.IGNORECASE
    )
    if match is None:
        return None
    return BoundaryMatch(match.group(1), 95)


def _before_close_tag(prefix: str, config: InferenceConfig) -> BoundaryMatch | None:
    match = re.search(rf"(\[/(?:{_tag_alternation(config)})\]\s*)$", prefix, re.IGNORECASE)
    if match is None:
        return None
    return BoundaryMatch(match.group(1), 90)


def _before_keyword(prefix: str, config: InferenceConfig) -> BoundaryMatch | None:
    for keyword in config.semantic_keywords:
        if prefix.endswith(keyword):
            return BoundaryMatch(keyword, 90)
        index = prefix.rfind(keyword)
        if index != -1 and len(prefix) - (index + len(keyword)) <= config.keyword_tolerance:
            return BoundaryMatch(keyword, 85)
    return None


def _before_simple(prefix: str, config: InferenceConfig) -> BoundaryMatch | None:
    for delimiter in config.simple_delimiters:
        if prefix.endswith(delimiter):
            return BoundaryMatch(delimiter, 70, occurrence=1)
    return None


def _before_ranked(prefix: str, config: InferenceConfig) -> BoundaryMatch | None:
    best: BoundaryMatch | None = None
    for delimiter in config.priority_delimiters:
        index = prefix.rfind(delimiter)
        if index == -1 or len(prefix) - (index + len(delimiter)) > config.lookback_window:
            continue
        confidence = 80 if len(delimiter) > 2 else 70
        if (
            best is None
            or confidence > best.confidence
            or (confidence == best.confidence and len(delimiter) > len(best.delimiter))
        ):
            best = BoundaryMatch(delimiter, confidence)
    return best


def _before_fallback(prefix: str, config: InferenceConfig) -> BoundaryMatch:
    return BoundaryMatch(prefix[-config.fallback_width :].strip(), 40)


def _after_close_tag(suffix: str, config: InferenceConfig) -> BoundaryMatch | None:
    match = re.match(rf"(\s*)(\[/(?:{_tag_alternation(config)})\])", suffix, re.IGNORECASE)
    if match is None:
        return None
    return BoundaryMatch(match.group(1) + match.group(2), 95)


def _after_open_tag(suffix: str, config: InferenceConfig) -> BoundaryMatch | None:
    match = re.match(rf"(\s*)\[(?:{_tag_alternation(config)})[=\]]", suffix, re.IGNORECASE)
    if match is None:
        return None
    return BoundaryMatch(match.group(1) + "[", 90)


def _after_simple(suffix: str, config: InferenceConfig) -> BoundaryMatch | None:
    alternation = "|".join(re.escape(delimiter) for delimiter in config.simple_delimiters)
    match = re.match(rf"\s*({alternation})", suffix)
    if match is None:
        return None
    return BoundaryMatch(match.group(1), 80)


def _after_ranked(suffix: str, config: InferenceConfig) -> BoundaryMatch | None:
    for delimiter in config.priority_delimiters:
        index = suffix.find(delimiter)
        if index != -1 and index <= config.lookahead_window:
            return BoundaryMatch(delimiter, 75)
    return None


def _after_fallback(suffix: str, config: InferenceConfig) -> BoundaryMatch:
    return BoundaryMatch(suffix[: config.fallback_width].strip() or "]", 40)


BEFORE_RULES: tuple[BoundaryRule, ...] = (
    BoundaryRule("open_tag", _before_open_tag),
    BoundaryRule("close_tag", _before_close_tag),
    BoundaryRule("semantic_keyword", _before_keyword),
    BoundaryRule("simple_delimiter", _before_simple, frozenset({"simple"})),
    BoundaryRule("ranked_delimiter", _before_ranked, frozenset({"nth", "auto"})),
    BoundaryRule("fallback", _before_fallback),
)

AFTER_RULES: tuple[BoundaryRule, ...] = (
    BoundaryRule("close_tag", _after_close_tag),
    BoundaryRule("open_tag", _after_open_tag),
    BoundaryRule("simple_delimiter", _after_simple),
    BoundaryRule("ranked_delimiter", _after_ranked),
    BoundaryRule("fallback", _after_fallback),
)
