"""Caller-supplied condition and loop-source tables for template rendering."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from core.templating.context import MISSING, Context

DEFAULT_ALIASES: tuple[str, ...] = ("file", "group", "update", "section", "link", "item")


class _Rule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str

    def _value(self, context: Context) -> Any:
        return context.resolve(self.path.split("."))


class FlagCondition(_Rule):
    """Boolean setting used directly."""

    kind: Literal["flag"] = "flag"

    def evaluate(self, context: Context) -> bool:
        return self._value(context) is True


class NonEmptyCondition(_Rule):
    """Collection with at least one element."""

    kind: Literal["non_empty"] = "non_empty"

    def evaluate(self, context: Context) -> bool:
        value = self._value(context)
        return isinstance(value, (list, tuple, Mapping)) and len(value) > 0


class AnyCondition(_Rule):
    """At least one collection element whose ``where`` field is truthy."""

    kind: Literal["any"] = "any"
    where: str | None = None

    def evaluate(self, context: Context) -> bool:
        value = self._value(context)
        if not isinstance(value, (list, tuple)):
            return False
        return any(_matches(item, self.where) for item in value)


class TextCondition(_Rule):
    """String that is non-empty after trimming."""

    kind: Literal["text"] = "text"

    def evaluate(self, context: Context) -> bool:
        value = self._value(context)
        return isinstance(value, str) and bool(value.strip())


class EqualsCondition(_Rule):
    """Value equal to a literal, optionally negated."""

    kind: Literal["equals"] = "equals"
    value: JsonValue = None
    negate: bool = False

    def evaluate(self, context: Context) -> bool:
        resolved = self._value(context)
        equal = resolved is not MISSING and resolved == self.value
        return equal != self.negate


ConditionRule = Annotated[
    Union[FlagCondition, NonEmptyCondition, AnyCondition, TextCondition, EqualsCondition],
    Field(discriminator="kind"),
]

CONDITION_KINDS: tuple[str, ...] = ("flag", "non_empty", "any", "text", "equals")


class LoopSource(BaseModel):
    """Collection feeding a loop key, optionally filtered and truncated."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source: str
    where: str | None = None
    limit: int | None = Field(default=None, ge=0)


class RenderConfig(BaseModel):
    """Immutable per-template render configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    conditions: dict[str, ConditionRule] = Field(default_factory=dict)
    loops: dict[str, LoopSource] = Field(default_factory=dict)
    aliases: tuple[str, ...] = DEFAULT_ALIASES
    sub_records_key: str = "subRecords"


def is_truthy(context: Context, key: str, config: RenderConfig) -> bool:
    """Evaluate an ``If`` key via the configured rule or generic truthiness."""

    rule = config.conditions.get(key)
    if rule is not None:
        return rule.evaluate(context)
    return truthy_value(context.resolve(key.split(".")))


def resolve_loop_items(context: Context, key: str, config: RenderConfig) -> list[Any]:
    source = config.loops.get(key)
    path = source.source if source is not None else key
    value = context.resolve(path.split("."))
    if not isinstance(value, (list, tuple)):
        return []

    items = list(value)
    if source is not None and source.where is not None:
        items = [item for item in items if _matches(item, source.where)]
    if source is not None and source.limit is not None:
        items = items[: source.limit]
    return items


def truthy_value(value: Any) -> bool:
    if value is MISSING or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) > 0
    return bool(value)


def _matches(item: Any, where: str | None) -> bool:
    if where is None:
        return truthy_value(item)
    if not isinstance(item, Mapping):
        return False
    return truthy_value(item.get(where))
