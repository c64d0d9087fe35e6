"""Directive tree node types produced by the template parser."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TextNode:
    """Literal text emitted verbatim."""

    text: str


@dataclass(frozen=True)
class VariableNode:
    """``{path.to.value}`` substitution; ``marker`` is the original source text."""

    path: tuple[str, ...]
    marker: str


@dataclass(frozen=True)
class IfNode:
    """Conditional block rendered when ``key`` is truthy."""

    key: str
    body: tuple[DirectiveNode, ...]


@dataclass(frozen=True)
class LoopNode:
    """Block rendered once per item of the collection named by ``key``."""

    key: str
    body: tuple[DirectiveNode, ...]


DirectiveNode = Union[TextNode, VariableNode, IfNode, LoopNode]
