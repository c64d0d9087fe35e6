"""Multi-entry parsing: split raw text into blocks and group them by primary key."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from core.extraction.extractor import extract_outcome, sanitize_key
from core.extraction.merge import fold_sub_records, sort_sub_records
from core.extraction.models import Entry, EntryParseResult, FieldOutcome, MergeConfig
from core.patterns.models import FieldDefinition, Pattern, Variant
from core.patterns.regex import compile_user_regex
from core.templating.context import Context
from core.templating.renderer import render_source
from core.utils.errors import PatternError

logger = logging.getLogger("postsmith.extraction")

ENTRY_PATTERN_ID = "entry_pattern"


@dataclass(frozen=True)
class _Block:
    text: str
    groups: dict[str, str] = field(default_factory=dict)


@dataclass
class _Group:
    key: str | None
    blocks: list[_Block] = field(default_factory=list)


def parse_entries(text: str, variant: Variant, config: MergeConfig | None = None) -> list[Entry]:
    """Parse ``text`` into entries; see ``parse_document`` for the full result."""

    return parse_document(text, variant, config).entries


def parse_document(text: str, variant: Variant, config: MergeConfig | None = None) -> EntryParseResult:
    """Parse ``text`` into entries with a per-field outcome report.

    Rules:
    - each entry-pattern match (or anchor-delimited block) is one sub-record scope
    - consecutive blocks with the same sanitized primary key form one entry
    - blocks without a primary-key value are skipped when the variant has a key
    """

    result = EntryParseResult()
    try:
        blocks = _split_blocks(text, variant.entry_pattern)
    except PatternError as exc:
        logger.warning("entry pattern error in variant %s: %s", variant.id, exc)
        result.report.outcomes.append(
            FieldOutcome(field_id=ENTRY_PATTERN_ID, status="pattern_error", message=str(exc))
        )
        return result

    result.block_count = len(blocks)
    primary = variant.primary_key_field
    groups: list[_Group] = []

    for block in blocks:
        if primary is None:
            groups.append(_Group(key=None, blocks=[block]))
            continue

        outcome = _block_outcome(block, primary)
        key = sanitize_key(outcome.value) if outcome.value else ""
        if not key:
            result.report.outcomes.append(outcome)
            result.skipped_blocks += 1
            continue

        if groups and groups[-1].key == key:
            groups[-1].blocks.append(block)
        else:
            groups.append(_Group(key=key, blocks=[block]))

    effective = config or MergeConfig()
    for group in groups:
        result.entries.append(_build_entry(group, variant, effective, result))
    return result


def _split_blocks(text: str, entry_pattern: Pattern | None) -> list[_Block]:
    if entry_pattern is None:
        return [_Block(text)] if text.strip() else []

    if entry_pattern.regex:
        compiled = compile_user_regex(entry_pattern.regex, field_id=ENTRY_PATTERN_ID)
        return [
            _Block(
                match.group(0),
                {name: value for name, value in match.groupdict().items() if value is not None},
            )
            for match in compiled.finditer(text)
        ]

    anchor = entry_pattern.before
    if not anchor:
        return [_Block(text)] if text.strip() else []

    starts: list[int] = []
    position = text.find(anchor)
    while position != -1:
        starts.append(position)
        position = text.find(anchor, position + len(anchor))

    blocks: list[_Block] = []
    for index, start in enumerate(starts):
        end = starts[index + 1] if index + 1 < len(starts) else len(text)
        if entry_pattern.after:
            stop = text.find(entry_pattern.after, start + len(anchor), end)
            if stop != -1:
                end = stop + len(entry_pattern.after)
        blocks.append(_Block(text[start:end]))
    return blocks


def _block_outcome(block: _Block, definition: FieldDefinition) -> FieldOutcome:
    captured = block.groups.get(definition.id)
    if captured is not None:
        value = captured.strip()
        if value:
            return FieldOutcome(field_id=definition.id, status="found", value=value)
        return FieldOutcome(field_id=definition.id, status="not_found")
    return extract_outcome(block.text, definition)


def _build_entry(group: _Group, variant: Variant, config: MergeConfig, result: EntryParseResult) -> Entry:
    group_text = "\n".join(block.text for block in group.blocks)
    entry_fields: dict[str, Any] = {}
    sub_fields: list[FieldDefinition] = []

    for definition in variant.fields:
        if definition.scope == "sub_record" and not definition.is_primary_key:
            sub_fields.append(definition)
            continue

        outcome = _group_outcome(group, definition, group_text)
        result.report.outcomes.append(outcome)
        if outcome.status == "found":
            entry_fields[definition.id] = outcome.value

    records: list[dict[str, Any]] = []
    if sub_fields:
        for block in group.blocks:
            record = _build_sub_record(block, sub_fields, variant, result)
            if record is not None:
                records.append(record)

    records = sort_sub_records(fold_sub_records(records, config), config)
    return Entry(key=group.key, fields=entry_fields, sub_records=records)


def _group_outcome(group: _Group, definition: FieldDefinition, group_text: str) -> FieldOutcome:
    for block in group.blocks:
        captured = block.groups.get(definition.id)
        if captured is not None and captured.strip():
            return FieldOutcome(field_id=definition.id, status="found", value=captured.strip())
    return _block_outcome(_Block(group_text), definition)


def _build_sub_record(
    block: _Block, sub_fields: list[FieldDefinition], variant: Variant, result: EntryParseResult
) -> dict[str, Any] | None:
    values: dict[str, Any] = {}
    for definition in sub_fields:
        outcome = _block_outcome(block, definition)
        result.report.outcomes.append(outcome)
        if outcome.status == "found":
            values[definition.id] = outcome.value

    if not values:
        return None

    record = dict(variant.sub_record_defaults)
    record.update(values)
    for name, source in variant.derived_fields.items():
        record[name] = render_source(source, Context(record))
    return record
