"""Configuration models for inference, rendering, and template definitions."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, JsonValue

from core.extraction.models import MergeConfig
from core.patterns.models import ParserConfig
from core.templating.conditions import RenderConfig


class InferenceConfig(BaseModel):
    """Delimiter vocabularies and windows used by pattern inference."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    markup_tags: tuple[str, ...]
    semantic_keywords: tuple[str, ...]
    simple_delimiters: tuple[str, ...]
    priority_delimiters: tuple[str, ...]
    keyword_tolerance: int = Field(default=3, ge=0)
    lookback_window: int = Field(default=5, ge=0)
    lookahead_window: int = Field(default=30, ge=0)
    fallback_width: int = Field(default=10, ge=1)


class TemplateDefinition(BaseModel):
    """A bulletin template together with its parser, merge, and render configuration."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    source: str
    parser: ParserConfig
    merge: MergeConfig = Field(default_factory=MergeConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    settings: dict[str, JsonValue] = Field(default_factory=dict)
