"""Pattern model: extraction rules, fields, and parser variants."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

FieldScope = Literal["entry", "sub_record"]
InferenceMode = Literal["auto", "nth", "simple", "regex"]


class Pattern(BaseModel):
    """Anchor description for one value.

    Rules:
    - ``regex`` (when set) overrides before/after/occurrence for extraction.
    - ``occurrence`` is the 1-based match of ``before`` that anchors the value.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    before: str = ""
    after: str = ""
    occurrence: int = Field(default=1, ge=1)
    regex: str | None = None


class FieldDefinition(BaseModel):
    """A named, pattern-described value to extract from source text."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    label: str = ""
    is_primary_key: bool = False
    scope: FieldScope = "entry"
    pattern: Pattern = Field(default_factory=Pattern)


class DetectionRule(BaseModel):
    """Variant detection rule scored by the variant selector."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["contains", "regex"]
    value: str


class Variant(BaseModel):
    """One parser configuration among alternatives for differently-shaped input."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    detection_rules: list[DetectionRule] = Field(default_factory=list)
    sample_text: str = ""
    fields: list[FieldDefinition] = Field(default_factory=list)
    entry_pattern: Pattern | None = None
    sub_record_defaults: dict[str, Any] = Field(default_factory=dict)
    derived_fields: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_fields(self) -> Variant:
        seen: set[str] = set()
        for item in self.fields:
            if item.id in seen:
                raise ValueError(f"Duplicate field id in variant {self.id!r}: {item.id}")
            seen.add(item.id)

        primary = [item.id for item in self.fields if item.is_primary_key]
        if len(primary) > 1:
            raise ValueError(
                f"Variant {self.id!r} declares more than one primary key: {sorted(primary)}"
            )
        return self

    @property
    def primary_key_field(self) -> FieldDefinition | None:
        for item in self.fields:
            if item.is_primary_key:
                return item
        return None

    def get_field(self, field_id: str) -> FieldDefinition:
        for item in self.fields:
            if item.id == field_id:
                return item
        raise KeyError(field_id)

    def set_primary_key(self, field_id: str) -> None:
        """Mark ``field_id`` as primary key and clear the flag on all siblings."""

        self.get_field(field_id)
        for item in self.fields:
            item.is_primary_key = item.id == field_id


class ParserConfig(BaseModel):
    """Variant set for one template; ``default_variant`` wins score ties."""

    model_config = ConfigDict(extra="forbid")

    variants: list[Variant] = Field(min_length=1)
    default_variant: str | None = None

    @model_validator(mode="after")
    def _check_default(self) -> ParserConfig:
        ids = [variant.id for variant in self.variants]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate variant ids: {ids}")
        if self.default_variant is None:
            self.default_variant = ids[0]
        elif self.default_variant not in ids:
            raise ValueError(f"default_variant {self.default_variant!r} is not one of {ids}")
        return self

    def get_variant(self, variant_id: str) -> Variant:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        raise KeyError(variant_id)


class InferredPattern(BaseModel):
    """Result of inferring before/after anchors from a selected span."""

    model_config = ConfigDict(extra="forbid")

    before: str
    after: str
    occurrence: int = Field(ge=1)
    confidence: int
    mode: InferenceMode
    suggested_id: str
    suggested_label: str

    def to_pattern(self) -> Pattern:
        return Pattern(before=self.before, after=self.after, occurrence=self.occurrence)
