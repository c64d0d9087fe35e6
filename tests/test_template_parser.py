from __future__ import annotations

import pytest

from core.templating.models import IfNode, LoopNode, TextNode, VariableNode
from core.templating.parser import collect_directive_keys, collect_variables, parse_template
from core.utils.errors import TemplateSyntaxError


def test_parse_plain_text_is_single_text_node() -> None:
    assert parse_template("no directives here") == [TextNode("no directives here")]


def test_parse_variables_and_text() -> None:
    nodes = parse_template("Hi {user.name}!")

    assert nodes == [
        TextNode("Hi "),
        VariableNode(path=("user", "name"), marker="{user.name}"),
        TextNode("!"),
    ]


def test_parse_if_and_loop_blocks() -> None:
    nodes = parse_template("<OPEN:show>A<CLOSE:show><LOOPOPEN:files>{file.name}<LOOPCLOSE:files>")

    assert nodes == [
        IfNode("show", (TextNode("A"),)),
        LoopNode("files", (VariableNode(path=("file", "name"), marker="{file.name}"),)),
    ]


def test_parse_comment_markers() -> None:
    nodes = parse_template("<!--IF:gameVersion-->v{gameVersion}<!--/IF:gameVersion--><!--LOOP:x-->-<!--/LOOP:x-->")

    assert isinstance(nodes[0], IfNode)
    assert nodes[0].key == "gameVersion"
    assert isinstance(nodes[1], LoopNode)
    assert nodes[1].body == (TextNode("-"),)


def test_parse_nested_blocks_sharing_a_key() -> None:
    nodes = parse_template("<LOOPOPEN:a><LOOPOPEN:a>x<LOOPCLOSE:a><LOOPCLOSE:a>")

    assert nodes == [LoopNode("a", (LoopNode("a", (TextNode("x"),)),))]


def test_parse_mismatched_close_fails() -> None:
    with pytest.raises(TemplateSyntaxError) as exc_info:
        parse_template("<OPEN:a>x<CLOSE:b>")

    assert exc_info.value.key == "b"
    assert exc_info.value.offset == 9


def test_parse_close_of_wrong_kind_fails() -> None:
    with pytest.raises(TemplateSyntaxError):
        parse_template("<OPEN:a>x<LOOPCLOSE:a>")


def test_parse_comment_markers_cannot_close_other_kind() -> None:
    with pytest.raises(TemplateSyntaxError):
        parse_template("<!--IF:a-->x<!--/LOOP:a-->")


def test_parse_unmatched_close_fails() -> None:
    with pytest.raises(TemplateSyntaxError, match="Unmatched"):
        parse_template("text<CLOSE:a>")


def test_parse_unclosed_block_reports_open_offset() -> None:
    with pytest.raises(TemplateSyntaxError, match="Unclosed") as exc_info:
        parse_template("ab<LOOPOPEN:files>{file.name}")

    assert exc_info.value.key == "files"
    assert exc_info.value.offset == 2


def test_parse_keeps_non_variable_braces_as_text() -> None:
    nodes = parse_template("{a..b} { spaced } {}")

    assert all(isinstance(node, TextNode) for node in nodes)
    assert "".join(node.text for node in nodes if isinstance(node, TextNode)) == "{a..b} { spaced } {}"


def test_collect_variables_and_directive_keys() -> None:
    nodes = parse_template(
        "<OPEN:show>{title}<LOOPOPEN:files>{file.name}{title}<LOOPCLOSE:files><CLOSE:show>"
        "<!--IF:footer-->{footer}<!--/IF:footer-->"
    )

    assert collect_variables(nodes) == ["title", "file.name", "footer"]
    assert collect_directive_keys(nodes) == {"conditions": ["show", "footer"], "loops": ["files"]}
