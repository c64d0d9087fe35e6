"""Stack-based parser for bulletin template directives.

Supported markers:
- ``<OPEN:key>`` ... ``<CLOSE:key>`` and ``<!--IF:key-->`` ... ``<!--/IF:key-->``
- ``<LOOPOPEN:key>`` ... ``<LOOPCLOSE:key>`` and ``<!--LOOP:key-->`` ... ``<!--/LOOP:key-->``
- ``{path.to.value}`` variables

Everything else is literal text. Blocks may nest, including blocks that share
a key; every close marker must match the innermost open block.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Literal

from core.templating.models import DirectiveNode, IfNode, LoopNode, TextNode, VariableNode
from core.utils.errors import TemplateSyntaxError

BlockKind = Literal["if", "loop"]

_TOKEN_RE = re.compile(
    r"<(?P<marker>OPEN|CLOSE|LOOPOPEN|LOOPCLOSE):(?P<marker_key>[\w.]+)>"
    r"|<!--(?P<legacy_close>/)?(?P<legacy_kind>IF|LOOP):(?P<legacy_key>[\w.]+)-->"
    r"|\{(?P<variable>[\w.]+)\}"
)

_MARKER_KINDS: dict[str, tuple[BlockKind, bool]] = {
    "OPEN": ("if", False),
    "CLOSE": ("if", True),
    "LOOPOPEN": ("loop", False),
    "LOOPCLOSE": ("loop", True),
}


@dataclass
class _Frame:
    kind: BlockKind | None
    key: str | None
    offset: int
    children: list[DirectiveNode] = field(default_factory=list)


def parse_template(source: str) -> list[DirectiveNode]:
    """Parse ``source`` into a directive tree.

    Raises:
        TemplateSyntaxError: on a close marker that does not match the innermost
            open block, or an open block left unclosed at end of input.
    """

    stack: list[_Frame] = [_Frame(kind=None, key=None, offset=0)]
    cursor = 0

    for match in _TOKEN_RE.finditer(source):
        if match.start() > cursor:
            stack[-1].children.append(TextNode(source[cursor : match.start()]))
        cursor = match.end()

        variable = match.group("variable")
        if variable is not None:
            stack[-1].children.append(_variable_node(variable, match.group(0)))
            continue

        kind, key, closing = _block_token(match)
        if not closing:
            stack.append(_Frame(kind=kind, key=key, offset=match.start()))
            continue

        top = stack[-1]
        if len(stack) == 1:
            raise TemplateSyntaxError(
                f"Unmatched {kind} close marker", key=key, offset=match.start()
            )
        if top.kind != kind or top.key != key:
            raise TemplateSyntaxError(
                f"Close marker does not match open {top.kind} block {top.key!r}",
                key=key,
                offset=match.start(),
            )

        stack.pop()
        body = tuple(top.children)
        node: DirectiveNode = IfNode(key, body) if kind == "if" else LoopNode(key, body)
        stack[-1].children.append(node)

    if cursor < len(source):
        stack[-1].children.append(TextNode(source[cursor:]))

    if len(stack) > 1:
        unclosed = stack[-1]
        raise TemplateSyntaxError(
            f"Unclosed {unclosed.kind} block", key=unclosed.key, offset=unclosed.offset
        )

    return stack[0].children


def collect_variables(nodes: Sequence[DirectiveNode]) -> list[str]:
    """Dotted variable paths used by the template, in first-seen order."""

    seen: dict[str, None] = {}
    for node in _walk(nodes):
        if isinstance(node, VariableNode):
            seen.setdefault(".".join(node.path), None)
    return list(seen)


def collect_directive_keys(nodes: Sequence[DirectiveNode]) -> dict[str, list[str]]:
    """Condition and loop keys used by the template, in first-seen order."""

    conditions: dict[str, None] = {}
    loops: dict[str, None] = {}
    for node in _walk(nodes):
        if isinstance(node, IfNode):
            conditions.setdefault(node.key, None)
        elif isinstance(node, LoopNode):
            loops.setdefault(node.key, None)
    return {"conditions": list(conditions), "loops": list(loops)}


def _block_token(match: re.Match[str]) -> tuple[BlockKind, str, bool]:
    marker = match.group("marker")
    if marker is not None:
        kind, closing = _MARKER_KINDS[marker]
        return kind, match.group("marker_key"), closing

    legacy_kind: BlockKind = "if" if match.group("legacy_kind") == "IF" else "loop"
    return legacy_kind, match.group("legacy_key"), match.group("legacy_close") is not None


def _variable_node(raw_path: str, marker: str) -> DirectiveNode:
    path = tuple(raw_path.split("."))
    if any(not segment for segment in path):
        return TextNode(marker)
    return VariableNode(path=path, marker=marker)


def _walk(nodes: Sequence[DirectiveNode]) -> Iterator[DirectiveNode]:
    for node in nodes:
        yield node
        if isinstance(node, (IfNode, LoopNode)):
            yield from _walk(node.body)
