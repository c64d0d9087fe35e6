"""Non-destructive merge of parsed entries into stored entries."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from core.extraction.models import Entry, MergeAction, MergeConfig


def merge_entry(existing: Entry | None, incoming: Entry, config: MergeConfig | None = None) -> Entry:
    """Merge ``incoming`` into ``existing``; total, last-writer-wins per field.

    Sub-records are matched by ``config.sub_record_key`` (by full equality when
    no key is configured); matches are overlaid, others appended. The merged
    sub-records are rank-sorted.
    """

    if existing is None:
        return incoming.model_copy(deep=True)

    effective = config or MergeConfig()
    fields = _merge_values(existing.fields, incoming.fields, effective.rules)

    records = [dict(record) for record in existing.sub_records]
    for record in incoming.sub_records:
        index = _find_record(records, record, effective)
        if index is None:
            records.append(dict(record))
            continue

        current = records[index]
        merged = _merge_values(current, record, effective.rules)
        for field_id, flag in effective.change_flags.items():
            if field_id in current and field_id in record and current[field_id] != record[field_id]:
                merged[flag] = True
        records[index] = merged

    return Entry(
        key=existing.key if existing.key is not None else incoming.key,
        fields=fields,
        sub_records=sort_sub_records(records, effective),
    )


def upsert(entries: Mapping[str, Entry], entry: Entry, config: MergeConfig | None = None) -> dict[str, Entry]:
    """Return a new mapping with ``entry`` merged in by key; never deletes."""

    key = entry.key or uuid.uuid4().hex
    keyed = entry if entry.key == key else entry.model_copy(update={"key": key})

    result = dict(entries)
    result[key] = merge_entry(result.get(key), keyed, config)
    return result


def sub_record_identity(record: Mapping[str, Any], config: MergeConfig) -> tuple[Any, ...] | None:
    if not config.sub_record_key:
        return None
    return tuple(record.get(name) for name in config.sub_record_key)


def sort_sub_records(records: list[dict[str, Any]], config: MergeConfig) -> list[dict[str, Any]]:
    """Stable sort by the index of the first rank prefix the rank field starts with."""

    if config.rank_field is None or not config.rank_prefixes:
        return records

    rank_field = config.rank_field

    def rank(record: dict[str, Any]) -> int:
        value = str(record.get(rank_field, ""))
        for index, prefix in enumerate(config.rank_prefixes):
            if value.startswith(prefix):
                return index
        return len(config.rank_prefixes)

    return sorted(records, key=rank)


def fold_sub_records(records: list[dict[str, Any]], config: MergeConfig) -> list[dict[str, Any]]:
    """Collapse records sharing a sub-record key, later records winning per field."""

    folded: list[dict[str, Any]] = []
    for record in records:
        index = _find_record(folded, record, config)
        if index is None:
            folded.append(dict(record))
        else:
            folded[index] = _merge_values(folded[index], record, config.rules)
    return folded


def _find_record(records: list[dict[str, Any]], record: Mapping[str, Any], config: MergeConfig) -> int | None:
    identity = sub_record_identity(record, config)
    for index, candidate in enumerate(records):
        if identity is None:
            if candidate == record:
                return index
        elif sub_record_identity(candidate, config) == identity:
            return index
    return None


def _merge_values(
    current: Mapping[str, Any], incoming: Mapping[str, Any], rules: Mapping[str, MergeAction]
) -> dict[str, Any]:
    result = dict(current)
    for key, value in incoming.items():
        action = rules.get(key, "replace")
        if action == "keep" and key in result:
            continue
        if action == "append" and isinstance(result.get(key), str) and isinstance(value, str):
            # Re-importing the same text must not grow the stored value.
            if not result[key].endswith(value):
                result[key] = result[key] + value
        elif action == "merge_arrays" and isinstance(result.get(key), list) and isinstance(value, list):
            merged = list(result[key])
            for item in value:
                if item not in merged:
                    merged.append(item)
            result[key] = merged
        else:
            result[key] = value
    return result
