"""Data models for extraction results, entries, and merge configuration."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OutcomeStatus = Literal["found", "not_found", "pattern_error"]
MergeAction = Literal["replace", "keep", "append", "merge_arrays"]


class FieldOutcome(BaseModel):
    """Per-field extraction result."""

    model_config = ConfigDict(extra="forbid")

    field_id: str
    status: OutcomeStatus
    value: str | None = None
    message: str | None = None


class ExtractionReport(BaseModel):
    """Per-field success/failure summary for one extraction pass.

    Rules:
    - failures never abort sibling fields
    - pattern errors are counted separately from plain misses
    """

    model_config = ConfigDict(extra="forbid")

    outcomes: list[FieldOutcome] = Field(default_factory=list)

    @property
    def found_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "found")

    @property
    def missing_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "not_found")

    @property
    def error_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "pattern_error")

    def values(self) -> dict[str, str]:
        """Found values keyed by field id."""

        return {
            outcome.field_id: outcome.value
            for outcome in self.outcomes
            if outcome.status == "found" and outcome.value is not None
        }

    def summary(self) -> dict[str, int]:
        return {
            "found": self.found_count,
            "not_found": self.missing_count,
            "pattern_error": self.error_count,
        }


class Entry(BaseModel):
    """One structured record keyed by its sanitized primary-key value."""

    model_config = ConfigDict(extra="forbid")

    key: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    sub_records: list[dict[str, Any]] = Field(default_factory=list)

    def as_context(self, sub_records_key: str = "subRecords") -> dict[str, Any]:
        """Flatten into the mapping the template engine renders against."""

        context = dict(self.fields)
        context[sub_records_key] = [dict(record) for record in self.sub_records]
        return context


class EntryParseResult(BaseModel):
    """Output of multi-entry parsing."""

    model_config = ConfigDict(extra="forbid")

    entries: list[Entry] = Field(default_factory=list)
    report: ExtractionReport = Field(default_factory=ExtractionReport)
    block_count: int = 0
    skipped_blocks: int = 0


class MergeConfig(BaseModel):
    """Merge behaviour for entries and their sub-records."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sub_record_key: tuple[str, ...] = ()
    rules: dict[str, MergeAction] = Field(default_factory=dict)
    rank_field: str | None = None
    rank_prefixes: tuple[str, ...] = ()
    change_flags: dict[str, str] = Field(default_factory=dict)
