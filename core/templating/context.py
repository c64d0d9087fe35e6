"""Render context as an ordered list of named scopes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

MISSING: Any = object()


class Context:
    """Ordered scopes resolved first-scope-wins.

    A loop child context is ``(aliases, item, *parent_scopes)``: aliases shadow
    the item's own fields, which shadow everything inherited from the parent.
    """

    __slots__ = ("_scopes",)

    def __init__(self, *scopes: Mapping[str, Any] | None) -> None:
        self._scopes: tuple[Mapping[str, Any], ...] = tuple(
            scope for scope in scopes if scope is not None
        )

    @property
    def scopes(self) -> tuple[Mapping[str, Any], ...]:
        return self._scopes

    def child(self, item: Any, aliases: Sequence[str]) -> Context:
        alias_scope = {name: item for name in aliases}
        item_scope: Mapping[str, Any] = item if isinstance(item, Mapping) else {}
        return Context(alias_scope, item_scope, *self._scopes)

    def lookup(self, name: str) -> Any:
        for scope in self._scopes:
            if name in scope:
                return scope[name]
        return MISSING

    def resolve(self, path: Sequence[str]) -> Any:
        """Walk ``path``; returns ``MISSING`` when any segment is absent."""

        if not path:
            return MISSING
        value = self.lookup(path[0])
        for segment in path[1:]:
            if value is MISSING:
                break
            value = _step(value, segment)
        return value

    def get(self, dotted: str, default: Any = None) -> Any:
        value = self.resolve(dotted.split("."))
        return default if value is MISSING else value


def _step(value: Any, segment: str) -> Any:
    if isinstance(value, Mapping):
        return value[segment] if segment in value else MISSING
    if isinstance(value, (list, tuple)) and segment.isdigit():
        index = int(segment)
        return value[index] if index < len(value) else MISSING
    return MISSING
