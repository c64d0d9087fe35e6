"""Orchestration pipeline: select variant -> parse -> merge, and template rendering."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from core.config.models import TemplateDefinition
from core.extraction.entries import parse_document
from core.extraction.merge import upsert
from core.extraction.models import Entry, ExtractionReport
from core.extraction.variant_selector import select_variant
from core.patterns.models import ParserConfig, Variant
from core.templating.context import Context
from core.templating.models import DirectiveNode
from core.templating.parser import parse_template
from core.templating.renderer import render, render_batch


@dataclass
class ImportResult:
    """Outcome of importing one blob of raw text."""

    variant_id: str
    entries: dict[str, Entry]
    created_keys: list[str] = field(default_factory=list)
    updated_keys: list[str] = field(default_factory=list)
    skipped_blocks: int = 0
    report: ExtractionReport = field(default_factory=ExtractionReport)

    @property
    def changed_keys(self) -> list[str]:
        return self.created_keys + self.updated_keys


def run_import(
    text: str,
    definition: TemplateDefinition,
    existing: Mapping[str, Entry] | None = None,
    variant_id: str | None = None,
) -> ImportResult:
    """Parse ``text`` with the best-matching (or requested) variant and merge by key."""

    parser = definition.parser
    if variant_id is not None:
        variant = parser.get_variant(variant_id)
    else:
        variant = select_variant(text, parser.variants, parser.default_variant)

    parsed = parse_document(text, variant, definition.merge)
    entries = dict(existing or {})
    result = ImportResult(
        variant_id=variant.id,
        entries=entries,
        skipped_blocks=parsed.skipped_blocks,
        report=parsed.report,
    )

    for entry in parsed.entries:
        key = entry.key or uuid.uuid4().hex
        if key not in entries:
            result.created_keys.append(key)
        elif key not in result.created_keys and key not in result.updated_keys:
            result.updated_keys.append(key)
        entries = upsert(entries, entry.model_copy(update={"key": key}), definition.merge)

    result.entries = entries
    return result


def compile_definition(definition: TemplateDefinition) -> list[DirectiveNode]:
    """Parse the definition's template once; raises ``TemplateSyntaxError``."""

    return parse_template(definition.source)


def run_render(
    definition: TemplateDefinition,
    entry: Entry,
    nodes: list[DirectiveNode] | None = None,
) -> str:
    """Render one entry with the definition's settings as the ambient scope."""

    compiled = nodes if nodes is not None else compile_definition(definition)
    context = Context(entry.as_context(definition.render.sub_records_key), definition.settings)
    return render(compiled, context, definition.render)


def run_render_batch(
    definition: TemplateDefinition,
    entries: Iterable[Entry],
    nodes: list[DirectiveNode] | None = None,
) -> str:
    compiled = nodes if nodes is not None else compile_definition(definition)
    return render_batch(compiled, entries, definition.render, ambient=definition.settings)


def with_stored_variants(definition: TemplateDefinition, variants: list[Variant]) -> TemplateDefinition:
    """Swap in user-maintained variants; the definition's parser is kept when none are stored."""

    if not variants:
        return definition

    ids = [variant.id for variant in variants]
    default = definition.parser.default_variant if definition.parser.default_variant in ids else None
    parser = ParserConfig(variants=variants, default_variant=default)
    return definition.model_copy(update={"parser": parser})
