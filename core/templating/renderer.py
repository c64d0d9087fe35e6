"""Directive tree evaluation against a scoped render context."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from core.extraction.models import Entry
from core.templating.conditions import RenderConfig, is_truthy, resolve_loop_items
from core.templating.context import MISSING, Context
from core.templating.models import DirectiveNode, IfNode, LoopNode, TextNode, VariableNode
from core.templating.parser import parse_template

_BLANK_RUN_RE = re.compile(r"\n{3,}")

RenderSubject = Entry | Mapping[str, Any]


def render(
    nodes: Sequence[DirectiveNode],
    context: Context | Mapping[str, Any] | None = None,
    config: RenderConfig | None = None,
) -> str:
    """Render a parsed template and normalize blank lines."""

    scoped = context if isinstance(context, Context) else Context(context or {})
    return postprocess(_render_nodes(nodes, scoped, config or RenderConfig()))


def render_batch(
    nodes: Sequence[DirectiveNode],
    entries: Iterable[RenderSubject],
    config: RenderConfig | None = None,
    ambient: Mapping[str, Any] | None = None,
) -> str:
    """Render once per entry; outputs are post-processed individually and joined by newline."""

    effective = config or RenderConfig()
    parts = [
        render(nodes, Context(_subject_mapping(entry, effective), ambient), effective)
        for entry in entries
    ]
    return "\n".join(parts)


def render_source(
    source: str,
    context: Context | Mapping[str, Any] | None = None,
    config: RenderConfig | None = None,
) -> str:
    return render(parse_template(source), context, config)


def postprocess(text: str) -> str:
    """Blank out whitespace-only lines, collapse blank runs to one, strip."""

    lines = ["" if not line.strip() else line for line in text.split("\n")]
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _subject_mapping(subject: RenderSubject, config: RenderConfig) -> Mapping[str, Any]:
    if isinstance(subject, Entry):
        return subject.as_context(config.sub_records_key)
    return subject


def _render_nodes(nodes: Sequence[DirectiveNode], context: Context, config: RenderConfig) -> str:
    parts: list[str] = []
    for node in nodes:
        if isinstance(node, TextNode):
            parts.append(node.text)
        elif isinstance(node, VariableNode):
            value = context.resolve(node.path)
            parts.append(node.marker if value is MISSING else format_value(value))
        elif isinstance(node, IfNode):
            if is_truthy(context, node.key, config):
                parts.append(_render_nodes(node.body, context, config))
        elif isinstance(node, LoopNode):
            items = resolve_loop_items(context, node.key, config)
            if items:
                parts.append(
                    "\n".join(
                        _render_nodes(node.body, context.child(item, config.aliases), config)
                        for item in items
                    )
                )
    return "".join(parts)
