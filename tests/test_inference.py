from __future__ import annotations

import pytest

from core.config.loader import load_inference_config
from core.extraction.extractor import extract_with_pattern
from core.extraction.inference import (
    AFTER_RULES,
    BEFORE_RULES,
    infer_pattern,
    suggest_field_id,
    suggest_label,
)


def _select(text: str, selected: str, nth: int = 1) -> tuple[int, int]:
    start = -1
    for _ in range(nth):
        start = text.index(selected, start + 1)
    return start, start + len(selected)


def test_infer_prefers_enclosing_markup_tags() -> None:
    text = "[b]Foo[/b] [i]2024[/i]"
    start, end = _select(text, "Foo")

    inferred = infer_pattern(text, start, end)

    assert (inferred.before, inferred.after, inferred.occurrence) == ("[b]", "[/b]", 1)
    assert inferred.confidence == 95
    assert extract_with_pattern(text, inferred.to_pattern()) == "Foo"


def test_infer_counts_occurrence_of_repeated_tag() -> None:
    text = "[i]a[/i] [i]b[/i] [i]c[/i]"
    start, end = _select(text, "b")

    inferred = infer_pattern(text, start, end, mode="nth")

    assert inferred.before == "[i]"
    assert inferred.occurrence == 2
    assert extract_with_pattern(text, inferred.to_pattern()) == "b"


def test_infer_uses_semantic_keyword_near_selection() -> None:
    text = "Version: 1.2.3\nNext line"
    start, end = _select(text, "1.2.3")

    inferred = infer_pattern(text, start, end)

    assert inferred.before == "Version:"
    assert inferred.after == "\n"
    assert inferred.confidence == 75
    assert extract_with_pattern(text, inferred.to_pattern()) == "1.2.3"


def _rule(rules, name: str):
    return next(rule for rule in rules if rule.name == name)


def test_infer_uses_close_tag_and_trailing_space_before_selection() -> None:
    text = "[b]Name:[/b] Foo\nrest"
    start, end = _select(text, "Foo")

    inferred = infer_pattern(text, start, end)

    assert inferred.before == "[/b] "
    assert inferred.after == "\n"
    assert inferred.confidence == 75
    match = _rule(BEFORE_RULES, "close_tag").find(text[:start], load_inference_config())
    assert match is not None
    assert (match.delimiter, match.confidence) == ("[/b] ", 90)
    assert extract_with_pattern(text, inferred.to_pattern()) == "Foo"


@pytest.mark.parametrize(
    ("text", "expected_after"),
    [
        ("Title: Foo\n[b]Bar[/b]", "\n["),
        ("Title: Foo [b]Bar[/b]", " ["),
        ("Title: Foo[color=red]Bar[/color]", "["),
    ],
)
def test_infer_after_open_tag_keeps_real_whitespace(text: str, expected_after: str) -> None:
    start, end = _select(text, "Foo")

    inferred = infer_pattern(text, start, end)

    assert inferred.before == ": "
    assert inferred.after == expected_after
    assert inferred.confidence == 90
    match = _rule(AFTER_RULES, "open_tag").find(text[end:], load_inference_config())
    assert match is not None
    assert (match.delimiter, match.confidence) == (expected_after, 90)
    assert extract_with_pattern(text, inferred.to_pattern()) == "Foo"


def test_infer_simple_mode_pins_first_occurrence() -> None:
    text = "(abc) (def)"
    start, end = _select(text, "def")

    inferred = infer_pattern(text, start, end, mode="simple")

    assert inferred.before == "("
    assert inferred.occurrence == 1
    assert inferred.confidence == 70


def test_infer_auto_mode_ranks_delimiters_and_counts_occurrence() -> None:
    text = "(abc) (def)"
    start, end = _select(text, "def")

    inferred = infer_pattern(text, start, end, mode="auto")

    assert (inferred.before, inferred.after, inferred.occurrence) == ("(", ")", 2)
    assert extract_with_pattern(text, inferred.to_pattern()) == "def"


def test_infer_regex_mode_returns_empty_anchors() -> None:
    text = "[b]Foo[/b]"

    inferred = infer_pattern(text, 3, 6, mode="regex")

    assert (inferred.before, inferred.after, inferred.confidence) == ("", "", 0)
    assert inferred.suggested_id == "foo"


def test_infer_falls_back_to_trailing_window() -> None:
    text = "abcdefghijklmnop qrst"
    start, end = _select(text, "qrst")

    inferred = infer_pattern(text, start, end, mode="simple")

    assert inferred.confidence == 40
    assert inferred.before == "hijklmnop"
    assert inferred.after == "]"


def test_infer_is_deterministic() -> None:
    text = "[url=x][b]Foo [Win64] [Branch: public][/b][/url]"
    start, end = _select(text, "public")

    first = infer_pattern(text, start, end)
    second = infer_pattern(text, start, end)

    assert first == second


def test_infer_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError, match="Unsupported inference mode"):
        infer_pattern("abc", 0, 1, mode="fuzzy")


@pytest.mark.parametrize(("start", "end"), [(-1, 2), (2, 1), (0, 99)])
def test_infer_rejects_invalid_selection(start: int, end: int) -> None:
    with pytest.raises(ValueError, match="Invalid selection"):
        infer_pattern("abcdef", start, end)


def test_infer_accepts_custom_config() -> None:
    config = load_inference_config().model_copy(update={"semantic_keywords": ("Ver=",)})
    text = "Ver= 7 ;"
    start, end = _select(text, "7")

    inferred = infer_pattern(text, start, end, config=config)

    assert inferred.before == "Ver="


def test_rule_lists_end_with_unconditional_fallback() -> None:
    assert BEFORE_RULES[-1].name == "fallback"
    assert AFTER_RULES[-1].name == "fallback"
    assert BEFORE_RULES[-1].modes == AFTER_RULES[-1].modes


def test_suggestions_from_selected_text() -> None:
    assert suggest_field_id("Game Title Here Now") == "gameTitleHere"
    assert suggest_field_id("!!!") == "field"
    assert suggest_label("game-title here now extra") == "Game Title Here Now"
    assert suggest_label("") == "Field"
