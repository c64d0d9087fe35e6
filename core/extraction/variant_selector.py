"""Detection-rule scoring to pick the best parser variant for raw text."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from core.patterns.models import Variant
from core.patterns.regex import compile_user_regex
from core.utils.errors import PatternError, VariantSelectionError

logger = logging.getLogger("postsmith.extraction")

_CONTAINS_WEIGHT = 1
_REGEX_WEIGHT = 2


def score_variant(text: str, variant: Variant) -> int:
    """Score: +1 per matching ``contains`` rule, +2 per matching ``regex`` rule."""

    score = 0
    for rule in variant.detection_rules:
        if rule.type == "contains":
            if rule.value in text:
                score += _CONTAINS_WEIGHT
            continue

        try:
            compiled = compile_user_regex(rule.value)
        except PatternError:
            logger.debug("ignoring invalid detection regex in variant %s", variant.id)
            continue
        if compiled.search(text) is not None:
            score += _REGEX_WEIGHT
    return score


def select_variant(text: str, variants: Sequence[Variant], default_id: str | None) -> Variant:
    """Return the highest-scoring variant.

    Ties prefer ``default_id``, then list order.
    """

    if not variants:
        raise VariantSelectionError("No parser variants configured")

    scored = [(score_variant(text, variant), variant) for variant in variants]
    best_score = max(score for score, _ in scored)
    leaders = [variant for score, variant in scored if score == best_score]

    for variant in leaders:
        if variant.id == default_id:
            return variant
    return leaders[0]
